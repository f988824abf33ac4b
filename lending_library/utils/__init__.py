"""Lending Library - Utilities Package

This package contains helpers used at the CLI boundary:
- Form validators
- Output formatting (plain, json, rich)
"""
