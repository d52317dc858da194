import pytest

from tests.oauth_helpers import APP_BASE_URL, CLIENT_ID, CLIENT_SECRET, SESSION_SECRET

_ENV_KEYS = (
    "OAUTH_REDIRECT_URI",
    "OAUTH_AUTHORIZE_URL",
    "OAUTH_TOKEN_URL",
    "OAUTH_JWKS_URL",
    "OAUTH_ISSUER",
    "OAUTH_SCOPES",
    "SESSION_TTL_SECONDS",
    "SESSION_COOKIE_DOMAIN",
    "STATE_TTL_SECONDS",
    "AUTH_LANDING_PATH",
    "AUTH_FAILURE_PATH",
    "AUTH_HTTP_TIMEOUT",
    "AUTH_CORS_ORIGINS",
)


@pytest.fixture
def oauth_env(monkeypatch, tmp_path):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("OAUTH_CLIENT_ID", CLIENT_ID)
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", CLIENT_SECRET)
    monkeypatch.setenv("APP_BASE_URL", APP_BASE_URL)
    monkeypatch.setenv("SESSION_SECRET", SESSION_SECRET)
    monkeypatch.setenv("REVOCATION_STORE_PATH", str(tmp_path / "revocations.json"))
    return monkeypatch
