from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

from auth import signed_token
from auth.errors import (
    BackendUnavailableError,
    SessionExpiredError,
    SessionInvalidError,
    SessionRevokedError,
)
from auth.models import IdentityAssertion, SessionClaims
from auth.revocation_store import RevocationStore

LOGGER = logging.getLogger("sessiongate.auth.identity_backend")

SESSION_PURPOSE = "session-credential"


class IdentityBackend(ABC):
    @abstractmethod
    async def create_session(self, assertion: IdentityAssertion, ttl_seconds: int) -> str:
        raise NotImplementedError

    @abstractmethod
    async def verify_session(self, credential: str, *, check_revoked: bool = True) -> SessionClaims:
        raise NotImplementedError

    @abstractmethod
    async def subject_of(self, credential: str) -> str | None:
        """Return the credential's subject without enforcing expiry."""
        raise NotImplementedError

    @abstractmethod
    async def revoke_sessions(self, subject: str) -> None:
        raise NotImplementedError


class SignedSessionBackend(IdentityBackend):
    def __init__(
        self,
        secret: str,
        revocations: RevocationStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = signed_token.derive_key(secret, SESSION_PURPOSE)
        self._revocations = revocations
        self._clock = clock

    async def create_session(self, assertion: IdentityAssertion, ttl_seconds: int) -> str:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        now = self._clock()
        payload = {
            "typ": "session",
            "sub": assertion.subject,
            "iat": now,
            "exp": now + ttl_seconds,
            "ev": assertion.email_verified,
        }
        for field, value in (
            ("email", assertion.email),
            ("name", assertion.name),
            ("picture", assertion.picture),
        ):
            if value:
                payload[field] = value
        return signed_token.encode(payload, self._key)

    def _decode(self, credential: str) -> dict:
        try:
            payload = signed_token.decode(credential, self._key)
        except signed_token.SignatureError as error:
            raise SessionInvalidError(str(error)) from None

        if payload.get("typ") != "session":
            raise SessionInvalidError("Not a session credential.")
        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            raise SessionInvalidError("Session credential missing subject.")
        if not isinstance(payload.get("iat"), (int, float)):
            raise SessionInvalidError("Session credential missing iat.")
        if not isinstance(payload.get("exp"), (int, float)):
            raise SessionInvalidError("Session credential missing exp.")
        return payload

    async def _revoked_at(self, subject: str) -> float | None:
        try:
            return await self._revocations.get(subject)
        except (OSError, RuntimeError, ValueError) as error:
            raise BackendUnavailableError(
                f"Revocation store unavailable: {type(error).__name__}."
            ) from error

    async def verify_session(self, credential: str, *, check_revoked: bool = True) -> SessionClaims:
        payload = self._decode(credential)
        subject = payload["sub"]

        if self._clock() >= payload["exp"]:
            raise SessionExpiredError(f"Session for subject={subject} has expired.")

        if check_revoked:
            revoked_at = await self._revoked_at(subject)
            if revoked_at is not None and payload["iat"] <= revoked_at:
                raise SessionRevokedError(f"Session for subject={subject} was revoked.")

        return SessionClaims(
            subject=subject,
            issued_at=float(payload["iat"]),
            expires_at=float(payload["exp"]),
            email=payload.get("email"),
            name=payload.get("name"),
            picture=payload.get("picture"),
            email_verified=payload.get("ev") is True,
        )

    async def subject_of(self, credential: str) -> str | None:
        try:
            return self._decode(credential)["sub"]
        except SessionInvalidError:
            return None

    async def revoke_sessions(self, subject: str) -> None:
        try:
            await self._revocations.set(subject, self._clock())
        except (OSError, RuntimeError, ValueError) as error:
            raise BackendUnavailableError(
                f"Revocation store unavailable: {type(error).__name__}."
            ) from error
        LOGGER.info("Revoked all sessions for subject=%s", subject)
