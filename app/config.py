"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class CaseImportSettings:
    """
    Runtime settings for the case import pipeline.
    """

    chunk_size: int = 100
    default_phone_country_code: str = "+91"
    history_limit: int = 20
    log_validation_errors: bool = True


@dataclass(frozen=True)
class ImportStoreClientSettings:
    """
    HTTP settings for talking to a remote import store.
    """

    base_url: str = "http://localhost:8000"
    timeout_seconds: float = 15.0


@lru_cache(maxsize=1)
def get_case_import_settings() -> CaseImportSettings:
    """
    Return cached case import settings from environment variables.
    """

    return CaseImportSettings(
        chunk_size=max(1, _get_int_env("CASE_IMPORT_CHUNK_SIZE", 100)),
        default_phone_country_code=_get_str_env("CASE_IMPORT_PHONE_COUNTRY_CODE", "+91"),
        history_limit=max(1, _get_int_env("CASE_IMPORT_HISTORY_LIMIT", 20)),
        log_validation_errors=_get_bool_env("CASE_IMPORT_LOG_VALIDATION_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_import_store_client_settings() -> ImportStoreClientSettings:
    """
    Return cached import store client settings from environment variables.
    """

    return ImportStoreClientSettings(
        base_url=_get_str_env("IMPORT_STORE_BASE_URL", "http://localhost:8000").rstrip("/"),
        timeout_seconds=max(1.0, _get_float_env("IMPORT_STORE_TIMEOUT_SECONDS", 15.0)),
    )
