from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from auth import signed_token
from auth.errors import InvalidStateError
from auth.models import AuthorizationRequest

LOGGER = logging.getLogger("sessiongate.auth.state")

STATE_PURPOSE = "oauth-state"
DEFAULT_STATE_TTL_SECONDS = 600


class StateCodec:
    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = signed_token.derive_key(secret, STATE_PURPOSE)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, return_path: str) -> tuple[str, AuthorizationRequest]:
        request = AuthorizationRequest(
            nonce=secrets.token_urlsafe(24),
            return_path=return_path,
            created_at=self._clock(),
        )
        state = signed_token.encode(
            {
                "typ": "state",
                "n": request.nonce,
                "ts": request.created_at,
                "rp": request.return_path,
            },
            self._key,
        )
        return state, request

    def verify(self, state: str | None) -> AuthorizationRequest:
        if not state:
            raise InvalidStateError("Missing state parameter.")

        try:
            payload = signed_token.decode(state, self._key)
        except signed_token.SignatureError as error:
            raise InvalidStateError(f"State rejected: {error}") from None

        nonce = payload.get("n")
        created_at = payload.get("ts")
        return_path = payload.get("rp")
        if payload.get("typ") != "state" or not isinstance(nonce, str) or not nonce:
            raise InvalidStateError("State payload is incomplete.")
        if not isinstance(created_at, (int, float)) or not isinstance(return_path, str):
            raise InvalidStateError("State payload is incomplete.")

        age = self._clock() - created_at
        if age > self.ttl_seconds:
            raise InvalidStateError("State has expired.")
        if age < -60:
            raise InvalidStateError("State was issued in the future.")

        LOGGER.debug("Verified state nonce=%s****", nonce[:6])
        return AuthorizationRequest(
            nonce=nonce,
            return_path=return_path,
            created_at=float(created_at),
        )
