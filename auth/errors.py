from __future__ import annotations

from auth.models import FlowState


class FlowError(RuntimeError):
    code = "server_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        flow_state: FlowState = FlowState.FAILED,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.flow_state = flow_state


class ProviderDeniedError(FlowError):
    code = "access_denied"


class InvalidStateError(FlowError):
    code = "invalid_state"


class MalformedRequestError(FlowError):
    code = "invalid_request"


class TokenExchangeError(FlowError):
    code = "exchange_failed"


class AssertionValidationError(FlowError):
    code = "invalid_identity"


class BackendUnavailableError(FlowError):
    code = "temporarily_unavailable"


class SessionVerificationError(RuntimeError):
    reason = "invalid"


class SessionInvalidError(SessionVerificationError):
    reason = "invalid"


class SessionExpiredError(SessionVerificationError):
    reason = "expired"


class SessionRevokedError(SessionVerificationError):
    reason = "revoked"
