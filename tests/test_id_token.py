import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from auth.errors import AssertionValidationError, TokenExchangeError
from auth.id_token import IdTokenValidator
from tests.oauth_helpers import CLIENT_ID, ISSUER, JWKS_URL, KID, jwks_payload, make_id_token


def _validator() -> IdTokenValidator:
    return IdTokenValidator(
        jwks_url=JWKS_URL,
        issuers=[ISSUER, "accounts.example.com"],
        audience=CLIENT_ID,
    )


@pytest.mark.asyncio
async def test_validate_narrows_claims(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    assertion = await _validator().validate(make_id_token(subject="user-7", nonce="n-7"))

    assert assertion.subject == "user-7"
    assert assertion.issuer == ISSUER
    assert assertion.audience == CLIENT_ID
    assert assertion.name == "Ada Lovelace"
    assert assertion.picture == "https://cdn.example.com/ada.png"
    assert assertion.nonce == "n-7"
    assert assertion.expires_at > assertion.issued_at


@pytest.mark.asyncio
async def test_validate_accepts_alternate_issuer(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    assertion = await _validator().validate(make_id_token(issuer="accounts.example.com"))

    assert assertion.issuer == "accounts.example.com"


@pytest.mark.asyncio
async def test_validate_caches_signing_keys(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())
    validator = _validator()

    await validator.validate(make_id_token())
    await validator.validate(make_id_token(subject="user-2"))

    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_validate_rejects_expired_token(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="expired"):
        await _validator().validate(make_id_token(expires_in=-3600))


@pytest.mark.asyncio
async def test_validate_rejects_wrong_issuer(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="issuer"):
        await _validator().validate(make_id_token(issuer="https://evil.example.net"))


@pytest.mark.asyncio
async def test_validate_rejects_nonce_mismatch(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="nonce"):
        await _validator().validate(make_id_token(nonce="other"), expected_nonce="expected")


@pytest.mark.asyncio
async def test_validate_rejects_missing_nonce_when_expected(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="nonce"):
        await _validator().validate(make_id_token(), expected_nonce="expected")


@pytest.mark.asyncio
async def test_validate_rejects_forged_signature(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())
    attacker_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    with pytest.raises(AssertionValidationError, match="rejected"):
        await _validator().validate(make_id_token(key=attacker_key))


@pytest.mark.asyncio
async def test_validate_refetches_keys_after_rotation(httpx_mock) -> None:
    stale = jwks_payload()
    stale["keys"][0]["kid"] = "retired-key"
    httpx_mock.add_response(url=JWKS_URL, json=stale)
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    assertion = await _validator().validate(make_id_token(kid=KID))

    assert assertion.subject == "user-1"
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_validate_rejects_unknown_key(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="unknown key"):
        await _validator().validate(make_id_token(kid="never-published"))


@pytest.mark.asyncio
async def test_validate_rejects_garbage() -> None:
    with pytest.raises(AssertionValidationError, match="malformed"):
        await _validator().validate("not-a-jwt")


@pytest.mark.asyncio
async def test_jwks_outage_is_an_exchange_failure(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, status_code=503)

    with pytest.raises(TokenExchangeError, match="signing keys"):
        await _validator().validate(make_id_token())


@pytest.mark.asyncio
async def test_validate_accepts_multiple_audiences_when_azp_matches(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    assertion = await _validator().validate(
        make_id_token(audience=[CLIENT_ID, "other-service"], azp=CLIENT_ID)
    )

    assert assertion.audience == CLIENT_ID


@pytest.mark.asyncio
async def test_validate_rejects_multiple_audiences_without_azp(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="azp"):
        await _validator().validate(make_id_token(audience=[CLIENT_ID, "other-service"]))


@pytest.mark.asyncio
async def test_validate_rejects_foreign_authorized_party(httpx_mock) -> None:
    httpx_mock.add_response(url=JWKS_URL, json=jwks_payload())

    with pytest.raises(AssertionValidationError, match="authorized party"):
        await _validator().validate(
            make_id_token(audience=[CLIENT_ID, "other-service"], azp="other-service")
        )
