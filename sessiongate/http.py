from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .constants import APP_VERSION


async def health(request: Request) -> Response:
    del request
    return JSONResponse({"status": "ok", "version": APP_VERSION})


def health_route() -> Route:
    return Route("/health", health, methods=["GET"])
