import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(Exception):
    """Raised when a required setting is missing at startup."""
    pass


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    data_file: str = os.getenv("LIBRARY_DB_FILE", "booktracker.db")

    # Google Books API settings
    google_books_api_key: Optional[str] = os.getenv("GOOGLE_BOOKS_API_KEY")
    google_books_daily_limit: int = int(os.getenv("GOOGLE_BOOKS_DAILY_LIMIT", "1000"))
    google_books_timeout: float = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))
    enable_google_books: bool = _env_flag("ENABLE_GOOGLE_BOOKS", "True")

    # Search settings
    default_max_results: int = int(os.getenv("DEFAULT_MAX_RESULTS", "20"))
    max_external_results: int = int(os.getenv("MAX_EXTERNAL_RESULTS", "40"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Book Tracker")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
