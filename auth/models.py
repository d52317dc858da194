from __future__ import annotations

import enum
from dataclasses import dataclass


class FlowState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_PROVIDER = "awaiting_provider"
    CALLBACK_RECEIVED = "callback_received"
    SESSION_ISSUED = "session_issued"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthorizationRequest:
    nonce: str
    return_path: str
    created_at: float


@dataclass(frozen=True)
class IdentityAssertion:
    subject: str
    issuer: str
    audience: str
    issued_at: float
    expires_at: float
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    email_verified: bool = False
    nonce: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "IdentityAssertion":
        subject = claims.get("sub")
        issuer = claims.get("iss")
        audience = claims.get("aud")
        if isinstance(audience, list):
            audience = audience[0] if len(audience) == 1 else None

        if not isinstance(subject, str) or not subject:
            raise ValueError("ID token missing sub.")
        if not isinstance(issuer, str) or not issuer:
            raise ValueError("ID token missing iss.")
        if not isinstance(audience, str) or not audience:
            raise ValueError("ID token aud must be a single string.")

        email = claims.get("email")
        name = claims.get("name")
        picture = claims.get("picture")
        nonce = claims.get("nonce")
        return cls(
            subject=subject,
            issuer=issuer,
            audience=audience,
            issued_at=float(claims.get("iat", 0)),
            expires_at=float(claims.get("exp", 0)),
            email=email if isinstance(email, str) and email else None,
            name=name if isinstance(name, str) and name else None,
            picture=picture if isinstance(picture, str) and picture else None,
            email_verified=claims.get("email_verified") is True,
            nonce=nonce if isinstance(nonce, str) and nonce else None,
        )


@dataclass(frozen=True)
class SessionClaims:
    subject: str
    issued_at: float
    expires_at: float
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    email_verified: bool = False


@dataclass(frozen=True)
class AuthenticatedUser:
    subject: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    email_verified: bool = False

    @classmethod
    def from_session(cls, claims: SessionClaims) -> "AuthenticatedUser":
        return cls(
            subject=claims.subject,
            email=claims.email,
            name=claims.name,
            picture=claims.picture,
            email_verified=claims.email_verified,
        )

    def to_payload(self) -> dict:
        return {
            "subject": self.subject,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "email_verified": self.email_verified,
        }


@dataclass(frozen=True)
class StartOutcome:
    authorization_url: str
    flow_state: FlowState = FlowState.AWAITING_PROVIDER


@dataclass(frozen=True)
class CallbackOutcome:
    credential: str
    landing_url: str
    subject: str
    flow_state: FlowState = FlowState.SESSION_ISSUED


@dataclass(frozen=True)
class VerifyOutcome:
    user: AuthenticatedUser | None = None
    clear_cookie: bool = False

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    def to_payload(self) -> dict:
        if self.user is None:
            return {"authenticated": False}
        return {"authenticated": True, "user": self.user.to_payload()}


@dataclass(frozen=True)
class LogoutOutcome:
    revoked: bool
    subject: str | None = None
