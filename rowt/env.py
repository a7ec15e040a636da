from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .constants import DEFAULT_TIMEOUT_SECONDS, LOGGER


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_float(key: str, default: float | None) -> float | None:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number of seconds.")
    if value <= 0:
        raise RuntimeError(f"{key} must be greater than zero.")
    return value


def get_timeout() -> float:
    return _get_env_float("ROWT_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)


def get_refresh_timeout() -> float | None:
    # Unset means the refresh exchange is not bounded.
    return _get_env_float("ROWT_REFRESH_TIMEOUT", None)


def get_token_store_path() -> str | None:
    return os.getenv("ROWT_TOKEN_STORE_PATH", "").strip() or None


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    base_url = os.getenv("ROWT_BASE_URL", "").strip()
    if not base_url:
        raise RuntimeError("Missing required environment variable: ROWT_BASE_URL")

    parsed = urlparse(base_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(
            "ROWT_BASE_URL must be a valid HTTP(S) URL (for example: "
            "https://api.rowt.app)."
        )
    if parsed.scheme == "http":
        LOGGER.warning("ROWT_BASE_URL uses plain HTTP; tokens will be sent unencrypted.")


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("ROWT_DEBUG"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
