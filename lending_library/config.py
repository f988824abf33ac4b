import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Storage
    data_file: str = os.getenv("LIBRARY_DB_FILE", "library_store.db")

    # Seed dataset
    seed_url: str = os.getenv("LIBRARY_SEED_URL", "library-data.json")
    seed_timeout: float = float(os.getenv("LIBRARY_SEED_TIMEOUT", "10"))

    # Lending
    loan_days: int = int(os.getenv("LIBRARY_LOAN_DAYS", "14"))
    default_book_image: str = os.getenv("LIBRARY_DEFAULT_BOOK_IMAGE", "/images/default-book.jpg")

    # Application
    app_name: str = os.getenv("APP_NAME", "Lending Library")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()
