import pytest

from auth import signed_token
from auth.errors import (
    BackendUnavailableError,
    SessionExpiredError,
    SessionInvalidError,
    SessionRevokedError,
)
from auth.identity_backend import SESSION_PURPOSE, SignedSessionBackend
from auth.models import IdentityAssertion
from auth.revocation_store import MemoryRevocationStore, RevocationStore
from tests.oauth_helpers import CLIENT_ID, ISSUER, SESSION_SECRET, FakeClock


def _assertion(subject: str = "user-1") -> IdentityAssertion:
    return IdentityAssertion(
        subject=subject,
        issuer=ISSUER,
        audience=CLIENT_ID,
        issued_at=0.0,
        expires_at=0.0,
        email="ada@example.com",
        name="Ada Lovelace",
        email_verified=True,
    )


class _BrokenStore(RevocationStore):
    async def get(self, subject: str) -> float | None:
        raise OSError("disk gone")

    async def set(self, subject: str, revoked_at: float) -> None:
        raise OSError("disk gone")


def _backend(clock=None, store=None) -> SignedSessionBackend:
    return SignedSessionBackend(
        SESSION_SECRET,
        store or MemoryRevocationStore(),
        clock=clock or FakeClock(1000.0),
    )


@pytest.mark.asyncio
async def test_verify_returns_claims_for_fresh_session() -> None:
    backend = _backend()
    credential = await backend.create_session(_assertion(), 432000)

    claims = await backend.verify_session(credential)

    assert claims.subject == "user-1"
    assert claims.email == "ada@example.com"
    assert claims.name == "Ada Lovelace"
    assert claims.picture is None
    assert claims.email_verified is True
    assert claims.expires_at - claims.issued_at == 432000


@pytest.mark.asyncio
async def test_verify_rejects_expired_session() -> None:
    clock = FakeClock(1000.0)
    backend = _backend(clock)
    credential = await backend.create_session(_assertion(), 60)

    clock.advance(60)

    with pytest.raises(SessionExpiredError):
        await backend.verify_session(credential)


@pytest.mark.asyncio
async def test_revocation_covers_every_earlier_credential() -> None:
    clock = FakeClock(1000.0)
    backend = _backend(clock)
    laptop = await backend.create_session(_assertion(), 432000)
    clock.advance(5)
    phone = await backend.create_session(_assertion(), 432000)
    other_user = await backend.create_session(_assertion("user-2"), 432000)
    clock.advance(5)

    await backend.revoke_sessions("user-1")

    for credential in (laptop, phone):
        with pytest.raises(SessionRevokedError):
            await backend.verify_session(credential)
    assert (await backend.verify_session(other_user)).subject == "user-2"


@pytest.mark.asyncio
async def test_sessions_issued_after_revocation_are_valid() -> None:
    clock = FakeClock(1000.0)
    backend = _backend(clock)
    await backend.revoke_sessions("user-1")
    clock.advance(1)

    credential = await backend.create_session(_assertion(), 432000)

    assert (await backend.verify_session(credential)).subject == "user-1"


@pytest.mark.asyncio
async def test_verify_can_skip_revocation_check() -> None:
    clock = FakeClock(1000.0)
    backend = _backend(clock)
    credential = await backend.create_session(_assertion(), 432000)
    await backend.revoke_sessions("user-1")

    claims = await backend.verify_session(credential, check_revoked=False)

    assert claims.subject == "user-1"


@pytest.mark.asyncio
async def test_subject_of_ignores_expiry() -> None:
    clock = FakeClock(1000.0)
    backend = _backend(clock)
    credential = await backend.create_session(_assertion(), 60)
    clock.advance(3600)

    assert await backend.subject_of(credential) == "user-1"
    assert await backend.subject_of("garbage.value") is None


@pytest.mark.asyncio
async def test_verify_rejects_foreign_and_mistyped_tokens() -> None:
    backend = _backend()
    state_like = signed_token.encode(
        {"typ": "state", "sub": "user-1", "iat": 1, "exp": 10**12},
        signed_token.derive_key(SESSION_SECRET, SESSION_PURPOSE),
    )
    other_server = await SignedSessionBackend(
        "a-different-session-secret-0123456789", MemoryRevocationStore()
    ).create_session(_assertion(), 60)

    with pytest.raises(SessionInvalidError):
        await backend.verify_session(state_like)
    with pytest.raises(SessionInvalidError):
        await backend.verify_session(other_server)


@pytest.mark.asyncio
async def test_store_failures_surface_as_unavailable() -> None:
    backend = _backend(store=_BrokenStore())
    credential = await backend.create_session(_assertion(), 60)

    with pytest.raises(BackendUnavailableError):
        await backend.verify_session(credential)
    with pytest.raises(BackendUnavailableError):
        await backend.revoke_sessions("user-1")
