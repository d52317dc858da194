from __future__ import annotations

from starlette.requests import Request

SESSION_COOKIE_NAME = "session"
DEFAULT_SESSION_TTL_SECONDS = 5 * 24 * 60 * 60


class SessionCookieCodec:
    def __init__(
        self,
        *,
        domain: str | None = None,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        name: str = SESSION_COOKIE_NAME,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("Session cookie TTL must be positive.")
        self.name = name
        self.domain = domain or None
        self.ttl_seconds = ttl_seconds

    # encode and clear must share these or browsers keep the old cookie.
    def _attributes(self) -> dict:
        return {
            "key": self.name,
            "path": "/",
            "domain": self.domain,
            "secure": True,
            "httponly": True,
            "samesite": "lax",
        }

    def encode(self, credential: str) -> dict:
        if not credential:
            raise ValueError("Refusing to encode an empty session credential.")
        return {**self._attributes(), "value": credential, "max_age": self.ttl_seconds}

    def decode(self, request: Request) -> str | None:
        value = request.cookies.get(self.name)
        if not value or not value.strip():
            return None
        return value.strip()

    def clear(self) -> dict:
        return {**self._attributes(), "value": "", "max_age": 0}
