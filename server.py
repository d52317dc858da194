from __future__ import annotations

import contextlib
import os
from typing import AsyncIterator

import httpx
from starlette.applications import Starlette

from auth.cookies import SessionCookieCodec
from auth.flow import FlowConfig, OAuthFlowController
from auth.id_token import IdTokenValidator
from auth.identity_backend import IdentityBackend, SignedSessionBackend
from auth.oauth_server import OAuthServer
from auth.revocation_store import FileRevocationStore
from auth.state import StateCodec
from auth.token_exchange import TokenExchangeClient
from sessiongate.constants import APP_VERSION, LOGGER
from sessiongate.env import Settings, load_env, load_settings, setup_logging
from sessiongate.http import health_route


def build_oauth_server(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    backend: IdentityBackend | None = None,
) -> OAuthServer:
    session_secret = settings.session_secret.get_secret_value()

    validator = IdTokenValidator(
        jwks_url=settings.jwks_url,
        issuers=settings.issuers,
        audience=settings.client_id,
        http_client=http_client,
        timeout=settings.http_timeout,
    )
    exchanger = TokenExchangeClient(
        client_id=settings.client_id,
        client_secret=settings.client_secret.get_secret_value(),
        token_url=settings.token_url,
        validator=validator,
        http_client=http_client,
        timeout=settings.http_timeout,
    )
    if backend is None:
        backend = SignedSessionBackend(
            session_secret,
            FileRevocationStore(settings.revocation_store_path),
        )

    controller = OAuthFlowController(
        FlowConfig(
            client_id=settings.client_id,
            authorize_url=settings.authorize_url,
            redirect_uri=settings.redirect_uri,
            app_base_url=settings.app_base_url,
            session_ttl_seconds=settings.session_ttl_seconds,
            landing_path=settings.landing_path,
            scopes=settings.scopes,
        ),
        states=StateCodec(session_secret, ttl_seconds=settings.state_ttl_seconds),
        exchanger=exchanger,
        backend=backend,
    )
    codec = SessionCookieCodec(
        domain=settings.cookie_domain,
        ttl_seconds=settings.session_ttl_seconds,
    )
    return OAuthServer(
        controller,
        codec,
        app_base_url=settings.app_base_url,
        failure_path=settings.failure_path,
        cors_origins=settings.cors_origins,
    )


def create_app(settings: Settings | None = None) -> Starlette:
    if settings is None:
        load_env()
        setup_logging()
        settings = load_settings()

    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    oauth_server = build_oauth_server(settings, http_client=http_client)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        del app
        LOGGER.info(
            "sessiongate %s serving %s (cookie domain=%s)",
            APP_VERSION,
            settings.app_base_url,
            settings.cookie_domain or "<host-only>",
        )
        try:
            yield
        finally:
            await http_client.aclose()

    app = Starlette(routes=[health_route(), *oauth_server.routes()], lifespan=lifespan)
    app.state.oauth_server = oauth_server
    return app


def main() -> None:
    import uvicorn

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
