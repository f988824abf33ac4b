"""Lending Library - Core Application Package

This package contains the core application modules including:
- Lending state engine (library.py)
- Data models and lending status (book.py)
- Key/value store (database.py)
- Seed dataset loading (seed.py)
- Borrowing history projections (history.py)
- Session handling (auth.py)
- CLI interface (main.py)
"""
