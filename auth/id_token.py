from __future__ import annotations

import hmac
import logging
import time
from typing import Callable

import httpx
import jwt

from auth.errors import AssertionValidationError, TokenExchangeError
from auth.models import IdentityAssertion

LOGGER = logging.getLogger("sessiongate.auth.id_token")

JWKS_CACHE_SECONDS = 3600
REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


class IdTokenValidator:
    def __init__(
        self,
        *,
        jwks_url: str,
        issuers: list[str],
        audience: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        algorithms: list[str] | None = None,
        leeway_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.jwks_url = jwks_url
        self.issuers = list(issuers)
        self.audience = audience
        self.algorithms = algorithms or ["RS256"]
        self.leeway_seconds = leeway_seconds
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock
        self._keys: dict[str, jwt.PyJWK] = {}
        self._fetched_at = 0.0

    async def _fetch_jwks(self) -> None:
        own_client = self._http_client is None
        http_client = self._http_client or httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await http_client.get(self.jwks_url, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as error:
            raise TokenExchangeError(
                f"Could not fetch provider signing keys: {type(error).__name__}."
            ) from None
        except ValueError:
            raise TokenExchangeError("Provider JWKS is not valid JSON.") from None
        finally:
            if own_client:
                await http_client.aclose()

        if not isinstance(data, dict):
            raise TokenExchangeError("Provider JWKS must be a JSON object.")
        try:
            jwk_set = jwt.PyJWKSet.from_dict(data)
        except jwt.PyJWTError as error:
            raise TokenExchangeError(f"Provider JWKS is unusable: {error}") from None

        self._keys = {key.key_id: key for key in jwk_set.keys if key.key_id}
        self._fetched_at = self._clock()
        LOGGER.debug("Loaded %s provider signing keys", len(self._keys))

    async def _signing_key(self, kid: str) -> jwt.PyJWK:
        if not self._keys or self._clock() - self._fetched_at > JWKS_CACHE_SECONDS:
            await self._fetch_jwks()

        key = self._keys.get(kid)
        if key is None:
            # Provider may have rotated its keys since the last fetch.
            await self._fetch_jwks()
            key = self._keys.get(kid)
        if key is None:
            raise AssertionValidationError("ID token signed with an unknown key.")
        return key

    async def validate(
        self,
        id_token: str,
        *,
        expected_nonce: str | None = None,
    ) -> IdentityAssertion:
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.PyJWTError:
            raise AssertionValidationError("ID token is malformed.") from None

        if header.get("alg") not in self.algorithms:
            raise AssertionValidationError("ID token uses an unexpected algorithm.")
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise AssertionValidationError("ID token missing kid.")

        signing_key = await self._signing_key(kid)

        try:
            claims = jwt.decode(
                id_token,
                key=signing_key.key,
                algorithms=self.algorithms,
                audience=self.audience,
                leeway=self.leeway_seconds,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise AssertionValidationError("ID token has expired.") from None
        except jwt.InvalidAudienceError:
            raise AssertionValidationError("ID token audience mismatch.") from None
        except jwt.PyJWTError as error:
            raise AssertionValidationError(f"ID token rejected: {error}") from None

        if claims.get("iss") not in self.issuers:
            raise AssertionValidationError("ID token issuer mismatch.")

        # OIDC Core 3.1.3.7: several audiences need azp, and azp must be us.
        audience = claims.get("aud")
        authorized_party = claims.get("azp")
        multi_audience = isinstance(audience, list) and len(audience) > 1
        if multi_audience and authorized_party is None:
            raise AssertionValidationError("ID token has several audiences but no azp.")
        if authorized_party is not None and authorized_party != self.audience:
            raise AssertionValidationError("ID token authorized party mismatch.")
        if multi_audience:
            claims = {**claims, "aud": self.audience}

        if expected_nonce is not None:
            nonce = claims.get("nonce")
            if not isinstance(nonce, str) or not hmac.compare_digest(
                nonce.encode(), expected_nonce.encode()
            ):
                raise AssertionValidationError("ID token nonce mismatch.")

        try:
            return IdentityAssertion.from_claims(claims)
        except ValueError as error:
            raise AssertionValidationError(str(error)) from None
