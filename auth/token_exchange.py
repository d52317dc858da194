from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass

import httpx

from auth.errors import TokenExchangeError
from auth.id_token import IdTokenValidator
from auth.models import IdentityAssertion

LOGGER = logging.getLogger("sessiongate.auth.token_exchange")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUER = "https://accounts.google.com"

DEFAULT_SCOPES = ["openid", "email", "profile"]
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class TokenResponse:
    id_token: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise TokenExchangeError("Token response must be a JSON object.")

        id_token = payload.get("id_token")
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")

        if not isinstance(id_token, str) or not id_token:
            raise TokenExchangeError("Token response missing id_token.")
        if access_token is not None and not isinstance(access_token, str):
            raise TokenExchangeError("Token response access_token must be a string.")
        if expires_in is not None and not isinstance(expires_in, int):
            raise TokenExchangeError("Token response expires_in must be an integer.")

        return cls(
            id_token=id_token,
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_in=expires_in,
            scope=scope if isinstance(scope, str) else "",
        )


def build_authorization_url(
    authorize_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    nonce: str | None = None,
    extra_params: dict[str, str] | None = None,
) -> str:
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "state": state,
    }
    if nonce:
        query["nonce"] = nonce
    if extra_params:
        query.update(extra_params)
    separator = "&" if "?" in authorize_url else "?"
    return f"{authorize_url}{separator}{urllib.parse.urlencode(query)}"


def _provider_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return ""


class TokenExchangeClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        token_url: str,
        validator: IdTokenValidator,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.token_url = token_url
        self.validator = validator
        self._http_client = http_client
        self._timeout = timeout

    def __repr__(self) -> str:
        return f"TokenExchangeClient(client_id={self.client_id!r}, token_url={self.token_url!r})"

    async def fetch_tokens(self, code: str, redirect_uri: str) -> TokenResponse:
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self._client_secret,
        }

        own_client = self._http_client is None
        http_client = self._http_client or httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await http_client.post(
                self.token_url,
                data=payload,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            detail = _provider_error(error.response)
            raise TokenExchangeError(
                f"Token request failed with status {error.response.status_code}"
                + (f": {detail}" if detail else ".")
            ) from None
        except httpx.TimeoutException:
            raise TokenExchangeError("Token request timed out.") from None
        except httpx.HTTPError as error:
            raise TokenExchangeError(
                f"Token request failed: {type(error).__name__}."
            ) from None
        finally:
            if own_client:
                await http_client.aclose()

        try:
            body = response.json()
        except ValueError:
            raise TokenExchangeError("Token response is not valid JSON.") from None
        return TokenResponse.from_payload(body)

    async def exchange(
        self,
        code: str,
        redirect_uri: str,
        *,
        expected_nonce: str | None = None,
    ) -> IdentityAssertion:
        tokens = await self.fetch_tokens(code, redirect_uri)
        # Access and refresh tokens are not kept past this point.
        assertion = await self.validator.validate(
            tokens.id_token, expected_nonce=expected_nonce
        )
        LOGGER.info("Exchanged authorization code for subject=%s", assertion.subject)
        return assertion
