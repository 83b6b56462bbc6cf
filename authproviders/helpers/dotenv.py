import os
from pathlib import Path

from dotenv import load_dotenv

KEY_DATABASE_URL = "DATABASE_URL"
KEY_DATABASE_URL_MIGRATIONS = "DATABASE_URL_MIGRATIONS"
KEY_DB_ECHO = "AUTH_DB_ECHO"

_loaded = False


def get_dotenv_file_path() -> Path:
    return Path(os.getenv("AUTH_DOTENV_PATH", Path.cwd() / ".env"))


def load_dotenv_file() -> None:
    """Load the .env file once; real environment variables always win."""
    global _loaded
    if _loaded:
        return
    load_dotenv(get_dotenv_file_path(), override=False)
    _loaded = True


def get_dotenv_value(key: str, default: str | None = None) -> str | None:
    load_dotenv_file()
    return os.getenv(key, default)


def get_bool_value(key: str, default: bool = False) -> bool:
    value = get_dotenv_value(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
