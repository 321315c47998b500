from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_UPSTREAM_BASE_URL = "https://temple-online-scheduling.churchofjesuschrist.org/api"


@dataclass(frozen=True)
class Settings:
    upstream_base_url: str = DEFAULT_UPSTREAM_BASE_URL

    # Cookie header of the already-authenticated browser session.
    # We never log in ourselves; without it the upstream answers 401.
    upstream_session_cookie: str | None = None

    google_geocode_api_key: str | None = None

    # Where the directory, its timestamp and the desired facility are kept
    store_file: str = "store.json"

    directory_ttl_days: float = 7
    # How many times one facility's detail+geocode+image sequence may run per refresh.
    refresh_attempts: int = 1

    request_timeout_seconds: float = 20.0
    nearby_count: int = 3

    def require_geocode_key(self) -> str:
        if not self.google_geocode_api_key:
            raise RuntimeError("Missing required environment variable: GOOGLE_GEOCODE_API_KEY")
        return self.google_geocode_api_key


def _int_env(name: str, default: str, *, minimum: int) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected number.") from e


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    directory_ttl_days = _float_env("DIRECTORY_TTL_DAYS", "7")
    if directory_ttl_days < 0:
        raise RuntimeError("DIRECTORY_TTL_DAYS must be >= 0")

    request_timeout_seconds = _float_env("REQUEST_TIMEOUT_SECONDS", "20")
    if request_timeout_seconds <= 0:
        raise RuntimeError("REQUEST_TIMEOUT_SECONDS must be > 0")

    base_url = os.getenv("UPSTREAM_BASE_URL", DEFAULT_UPSTREAM_BASE_URL).strip().rstrip("/")

    return Settings(
        upstream_base_url=base_url or DEFAULT_UPSTREAM_BASE_URL,
        upstream_session_cookie=os.getenv("UPSTREAM_SESSION_COOKIE") or None,
        google_geocode_api_key=os.getenv("GOOGLE_GEOCODE_API_KEY") or None,
        store_file=os.getenv("STORE_FILE", "store.json"),
        directory_ttl_days=directory_ttl_days,
        refresh_attempts=_int_env("REFRESH_ATTEMPTS", "1", minimum=1),
        request_timeout_seconds=request_timeout_seconds,
        nearby_count=_int_env("NEARBY_COUNT", "3", minimum=1),
    )
