from __future__ import annotations

import logging
from dataclasses import dataclass, field

from auth.errors import (
    AssertionValidationError,
    BackendUnavailableError,
    FlowError,
    InvalidStateError,
    MalformedRequestError,
    ProviderDeniedError,
    SessionVerificationError,
)
from auth.identity_backend import IdentityBackend
from auth.models import (
    AuthenticatedUser,
    CallbackOutcome,
    FlowState,
    LogoutOutcome,
    StartOutcome,
    VerifyOutcome,
)
from auth.state import StateCodec
from auth.token_exchange import DEFAULT_SCOPES, TokenExchangeClient, build_authorization_url
from auth.urls import join_url, sanitize_return_path

LOGGER = logging.getLogger("sessiongate.auth.flow")


@dataclass(frozen=True)
class FlowConfig:
    client_id: str
    authorize_url: str
    redirect_uri: str
    app_base_url: str
    session_ttl_seconds: int
    landing_path: str = "/"
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    extra_authorize_params: dict[str, str] = field(default_factory=dict)


class OAuthFlowController:
    def __init__(
        self,
        config: FlowConfig,
        *,
        states: StateCodec,
        exchanger: TokenExchangeClient,
        backend: IdentityBackend,
    ) -> None:
        self.config = config
        self.states = states
        self.exchanger = exchanger
        self.backend = backend

    # -- start -----------------------------------------------------------------

    def start(self, return_path: str | None = None) -> StartOutcome:
        safe_path = sanitize_return_path(return_path, default=self.config.landing_path)
        state, request = self.states.issue(safe_path)
        url = build_authorization_url(
            self.config.authorize_url,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scopes=self.config.scopes,
            state=state,
            nonce=request.nonce,
            extra_params=self.config.extra_authorize_params,
        )
        LOGGER.debug("Starting sign-in nonce=%s**** return_path=%s", request.nonce[:6], safe_path)
        return StartOutcome(authorization_url=url)

    # -- callback --------------------------------------------------------------

    async def callback(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> CallbackOutcome:
        if error:
            raise ProviderDeniedError(
                f"Provider returned error={error}.",
                flow_state=FlowState.FAILED,
            )

        try:
            request = self.states.verify(state)
        except InvalidStateError as failure:
            LOGGER.warning("Rejected OAuth callback with bad state: %s", failure)
            raise

        if not code:
            raise MalformedRequestError("Missing code parameter.")

        # CALLBACK_RECEIVED: the code is spent by this single attempt.
        assertion = await self.exchanger.exchange(
            code,
            self.config.redirect_uri,
            expected_nonce=request.nonce,
        )
        if assertion.audience != self.config.client_id:
            raise AssertionValidationError("ID token was issued for another client.")

        try:
            credential = await self.backend.create_session(
                assertion, self.config.session_ttl_seconds
            )
        except FlowError:
            raise
        except Exception as failure:
            raise BackendUnavailableError(
                f"Could not mint session: {type(failure).__name__}."
            ) from failure

        LOGGER.info("Issued session for subject=%s", assertion.subject)
        return CallbackOutcome(
            credential=credential,
            landing_url=join_url(self.config.app_base_url, request.return_path),
            subject=assertion.subject,
        )

    # -- verify ----------------------------------------------------------------

    async def verify(self, credential: str | None) -> VerifyOutcome:
        if not credential:
            LOGGER.debug("Verify without session cookie")
            return VerifyOutcome()

        try:
            claims = await self.backend.verify_session(credential, check_revoked=True)
        except SessionVerificationError as failure:
            LOGGER.log(
                logging.WARNING if failure.reason == "revoked" else logging.INFO,
                "Session rejected reason=%s: %s",
                failure.reason,
                failure,
            )
            return VerifyOutcome(clear_cookie=True)
        except BackendUnavailableError as failure:
            LOGGER.error("Session verification unavailable: %s", failure)
            return VerifyOutcome()
        except Exception:
            LOGGER.exception("Unexpected error while verifying session")
            return VerifyOutcome()

        return VerifyOutcome(user=AuthenticatedUser.from_session(claims))

    # -- logout ----------------------------------------------------------------

    async def logout(self, credential: str | None) -> LogoutOutcome:
        if not credential:
            return LogoutOutcome(revoked=False)

        subject = None
        try:
            subject = await self.backend.subject_of(credential)
            if subject is None:
                LOGGER.info("Logout with unidentifiable session cookie")
                return LogoutOutcome(revoked=False)
            await self.backend.revoke_sessions(subject)
        except BackendUnavailableError as failure:
            LOGGER.error("Could not revoke sessions for subject=%s: %s", subject, failure)
            return LogoutOutcome(revoked=False, subject=subject)
        except Exception:
            LOGGER.exception("Unexpected error while revoking sessions for subject=%s", subject)
            return LogoutOutcome(revoked=False, subject=subject)

        return LogoutOutcome(revoked=True, subject=subject)
