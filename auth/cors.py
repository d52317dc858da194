from __future__ import annotations

from dataclasses import dataclass, field

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SESSION_ENDPOINT_METHODS = ("GET", "POST", "OPTIONS")


@dataclass(frozen=True)
class CorsPolicy:
    origins: frozenset[str] = field(default_factory=frozenset)
    methods: tuple[str, ...] = SESSION_ENDPOINT_METHODS
    headers: tuple[str, ...] = ("Content-Type",)

    @classmethod
    def from_origins(cls, origins: set[str] | None) -> "CorsPolicy":
        return cls(origins=frozenset(origin.rstrip("/") for origin in origins or ()))

    def allows(self, origin: str | None) -> bool:
        return bool(origin) and origin in self.origins

    def apply(self, request: Request, response: Response) -> Response:
        origin = request.headers.get("origin")
        if self.allows(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = ", ".join(self.methods)
            response.headers["Access-Control-Allow-Headers"] = ", ".join(self.headers)
        # Responses differ per Origin even when it is rejected.
        response.headers["Vary"] = "Origin"
        return response

    def preflight(self, request: Request) -> Response:
        return self.apply(request, Response(status_code=204))

    def error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        body = {"error": code, "error_description": description}
        return self.apply(request, JSONResponse(body, status_code=status_code))
