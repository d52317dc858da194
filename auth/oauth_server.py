from __future__ import annotations

import html
import json
import logging
import re

from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.cookies import SessionCookieCodec
from auth.cors import CorsPolicy
from auth.errors import FlowError, MalformedRequestError, ProviderDeniedError
from auth.flow import OAuthFlowController
from auth.urls import append_query_params, join_url

LOGGER = logging.getLogger("sessiongate.auth.routes")

DEFAULT_BASE_PATH = "/auth"
DEFAULT_FAILURE_PATH = "/login"
NAVIGATION_DELAY_MS = 100
_PROVIDER_ERROR_RE = re.compile(r"^[a-z_]{1,64}$")


def _landing_page(landing_url: str, delay_ms: int) -> str:
    script_url = json.dumps(landing_url).replace("<", "\\u003c")
    attr_url = html.escape(landing_url, quote=True)
    return (
        "<!doctype html><html lang='en'><head><meta charset='utf-8'>"
        "<title>Signing you in</title>"
        f"<noscript><meta http-equiv='refresh' content='0;url={attr_url}'></noscript>"
        "</head><body>"
        f"<p>Signing you in. If nothing happens, <a href='{attr_url}'>continue</a>.</p>"
        f"<script>setTimeout(function () {{ window.location.replace({script_url}); }}, {delay_ms});</script>"
        "</body></html>"
    )


class OAuthServer:
    def __init__(
        self,
        controller: OAuthFlowController,
        codec: SessionCookieCodec,
        *,
        app_base_url: str,
        failure_path: str = DEFAULT_FAILURE_PATH,
        base_path: str = DEFAULT_BASE_PATH,
        cors_origins: set[str] | None = None,
        navigation_delay_ms: int = NAVIGATION_DELAY_MS,
    ) -> None:
        self.controller = controller
        self.codec = codec
        self.app_base_url = app_base_url.rstrip("/")
        self.failure_path = failure_path
        self.base_path = base_path.rstrip("/")
        self.cors = CorsPolicy.from_origins(cors_origins)
        self.navigation_delay_ms = navigation_delay_ms

    def routes(self) -> list[Route]:
        base = self.base_path
        return [
            Route(f"{base}/start", self._handle_start, methods=["GET"]),
            Route(f"{base}/callback", self._handle_callback, methods=["GET"]),
            Route(f"{base}/verify-session", self._handle_verify, methods=["POST"]),
            Route(f"{base}/logout", self._handle_logout, methods=["POST"]),
            Route(f"{base}/verify-session", self._handle_preflight, methods=["OPTIONS"]),
            Route(f"{base}/logout", self._handle_preflight, methods=["OPTIONS"]),
        ]

    # -- handlers --------------------------------------------------------------

    async def _handle_start(self, request: Request) -> Response:
        outcome = self.controller.start(request.query_params.get("return_to"))
        response = RedirectResponse(url=outcome.authorization_url, status_code=303)
        response.headers["Cache-Control"] = "no-store"
        return response

    async def _handle_callback(self, request: Request) -> Response:
        params = request.query_params
        try:
            outcome = await self.controller.callback(
                code=params.get("code"),
                state=params.get("state"),
                error=params.get("error"),
            )
        except MalformedRequestError as failure:
            return self._error(request, failure.code, str(failure), 400)
        except ProviderDeniedError as failure:
            provider_code = params.get("error", "")
            if not _PROVIDER_ERROR_RE.match(provider_code):
                provider_code = failure.code
            LOGGER.info("Sign-in declined at provider error=%s", provider_code)
            return self._failure_redirect(provider_code)
        except FlowError as failure:
            LOGGER.warning(
                "Sign-in failed code=%s state=%s: %s",
                failure.code,
                failure.flow_state.value,
                failure,
            )
            return self._failure_redirect(failure.code)
        except Exception:
            LOGGER.exception("Unexpected error during OAuth callback")
            return self._failure_redirect("server_error")

        # Cookie arrives on a 200 document; the browser navigates afterwards.
        response = HTMLResponse(
            _landing_page(outcome.landing_url, self.navigation_delay_ms),
            status_code=200,
        )
        response.set_cookie(**self.codec.encode(outcome.credential))
        response.headers["Cache-Control"] = "no-store"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    async def _handle_verify(self, request: Request) -> Response:
        body = await request.body()
        if body.strip():
            try:
                json.loads(body)
            except ValueError:
                return self._error(request, "invalid_request", "Request body must be JSON.", 400)

        outcome = await self.controller.verify(self.codec.decode(request))
        response = JSONResponse(outcome.to_payload())
        if outcome.clear_cookie:
            response.set_cookie(**self.codec.clear())
        response.headers["Cache-Control"] = "no-store"
        return self.cors.apply(request, response)

    async def _handle_logout(self, request: Request) -> Response:
        revoked = False
        try:
            revoked = (await self.controller.logout(self.codec.decode(request))).revoked
        except Exception:
            LOGGER.exception("Unexpected error during logout")
        # The clear is sent whether or not revocation worked.
        response = JSONResponse({"success": True, "revoked": revoked})
        response.set_cookie(**self.codec.clear())
        response.headers["Cache-Control"] = "no-store"
        return self.cors.apply(request, response)

    async def _handle_preflight(self, request: Request) -> Response:
        return self.cors.preflight(request)

    # -- helpers ---------------------------------------------------------------

    def _failure_redirect(self, code: str) -> Response:
        url = append_query_params(join_url(self.app_base_url, self.failure_path), {"error": code})
        response = RedirectResponse(url=url, status_code=303)
        response.headers["Cache-Control"] = "no-store"
        return response

    def _error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        return self.cors.error(request, code, description, status_code)
