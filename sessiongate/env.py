from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from pydantic import AnyHttpUrl, SecretStr, TypeAdapter, ValidationError

from auth.cookies import DEFAULT_SESSION_TTL_SECONDS
from auth.oauth_server import DEFAULT_FAILURE_PATH
from auth.state import DEFAULT_STATE_TTL_SECONDS
from auth.token_exchange import (
    DEFAULT_SCOPES,
    DEFAULT_TIMEOUT_SECONDS,
    GOOGLE_AUTHORIZE_URL,
    GOOGLE_ISSUER,
    GOOGLE_JWKS_URL,
    GOOGLE_TOKEN_URL,
)

from .constants import LOGGER

REQUIRED_ENV = (
    "OAUTH_CLIENT_ID",
    "OAUTH_CLIENT_SECRET",
    "APP_BASE_URL",
    "SESSION_SECRET",
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a numeric value.")


def _get_env_url(key: str, default: str) -> str:
    raw = os.getenv(key, "").strip() or default
    try:
        return str(_HTTP_URL.validate_python(raw)).rstrip("/")
    except ValidationError:
        raise RuntimeError(f"{key} must be a valid http(s) URL.") from None


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: SecretStr
    session_secret: SecretStr
    app_base_url: str
    redirect_uri: str
    authorize_url: str = GOOGLE_AUTHORIZE_URL
    token_url: str = GOOGLE_TOKEN_URL
    jwks_url: str = GOOGLE_JWKS_URL
    issuers: list[str] = field(default_factory=lambda: [GOOGLE_ISSUER, "accounts.google.com"])
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    cookie_domain: str | None = None
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
    landing_path: str = "/"
    failure_path: str = DEFAULT_FAILURE_PATH
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS
    revocation_store_path: str = ".revocations.json"
    cors_origins: set[str] = field(default_factory=set)


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    app_base_url = os.getenv("APP_BASE_URL", "").strip()
    parsed = urlparse(app_base_url)
    if parsed.scheme != "https" or not parsed.netloc:
        raise RuntimeError(
            "APP_BASE_URL must be a valid public HTTPS URL (for example: "
            "https://app.example.com). Session cookies are always Secure."
        )

    if len(os.getenv("SESSION_SECRET", "").strip()) < 32:
        raise RuntimeError("SESSION_SECRET must be at least 32 characters long.")


def load_settings() -> Settings:
    validate_env()

    app_base_url = _get_env_url("APP_BASE_URL", "")
    redirect_uri = _get_env_url("OAUTH_REDIRECT_URI", f"{app_base_url}/auth/callback")

    issuers_raw = os.getenv("OAUTH_ISSUER", "").strip()
    issuers = (
        [item.strip() for item in issuers_raw.split(",") if item.strip()]
        if issuers_raw
        else [GOOGLE_ISSUER, "accounts.google.com"]
    )
    scopes = os.getenv("OAUTH_SCOPES", " ".join(DEFAULT_SCOPES)).split()
    if "openid" not in scopes:
        raise RuntimeError("OAUTH_SCOPES must include openid; the flow needs an ID token.")

    session_ttl = _get_env_int("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)
    if session_ttl <= 0:
        raise RuntimeError("SESSION_TTL_SECONDS must be positive.")

    cookie_domain = os.getenv("SESSION_COOKIE_DOMAIN", "").strip() or None
    if cookie_domain is None:
        LOGGER.warning(
            "SESSION_COOKIE_DOMAIN is not set; the session cookie will be host-only "
            "and not shared across subdomains."
        )

    return Settings(
        client_id=os.getenv("OAUTH_CLIENT_ID", "").strip(),
        client_secret=SecretStr(os.getenv("OAUTH_CLIENT_SECRET", "").strip()),
        session_secret=SecretStr(os.getenv("SESSION_SECRET", "").strip()),
        app_base_url=app_base_url,
        redirect_uri=redirect_uri,
        authorize_url=_get_env_url("OAUTH_AUTHORIZE_URL", GOOGLE_AUTHORIZE_URL),
        token_url=_get_env_url("OAUTH_TOKEN_URL", GOOGLE_TOKEN_URL),
        jwks_url=_get_env_url("OAUTH_JWKS_URL", GOOGLE_JWKS_URL),
        issuers=issuers,
        scopes=scopes,
        session_ttl_seconds=session_ttl,
        cookie_domain=cookie_domain,
        state_ttl_seconds=_get_env_int("STATE_TTL_SECONDS", DEFAULT_STATE_TTL_SECONDS),
        landing_path=os.getenv("AUTH_LANDING_PATH", "/").strip() or "/",
        failure_path=os.getenv("AUTH_FAILURE_PATH", DEFAULT_FAILURE_PATH).strip()
        or DEFAULT_FAILURE_PATH,
        http_timeout=_get_env_float("AUTH_HTTP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        revocation_store_path=os.getenv("REVOCATION_STORE_PATH", ".revocations.json"),
        cors_origins=parse_csv_env("AUTH_CORS_ORIGINS"),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("AUTH_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
