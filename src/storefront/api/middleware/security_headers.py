"""Security headers middleware for the storefront API.

Adds security headers to all responses per OWASP recommendations:
- X-Content-Type-Options: nosniff
- X-Frame-Options: DENY
- X-XSS-Protection: 0
- Referrer-Policy: strict-origin-when-cross-origin
- Strict-Transport-Security (HSTS) - optional
- Content-Security-Policy (CSP) - optional
- Permissions-Policy - optional
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

if TYPE_CHECKING:
    from starlette.types import ASGIApp

# The interactive docs load their assets from a CDN
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "img-src 'self' data: https://fastapi.tiangolo.com; "
    "font-src 'self' https://cdn.jsdelivr.net; "
    "frame-ancestors 'none'"
)
DOCS_PATHS = frozenset({"/docs", "/redoc", "/docs/oauth2-redirect"})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Args:
        app: The ASGI application
        enable_hsts: Whether to add HSTS header (should only be enabled with HTTPS)
        hsts_max_age: Max-age for HSTS in seconds
        hsts_include_subdomains: Include subdomains in HSTS
        hsts_preload: Add preload directive to HSTS
        csp_policy: Content-Security-Policy value (None to disable)
        permissions_policy: Permissions-Policy value (None to disable)
    """

    def __init__(
        self,
        app: ASGIApp,
        enable_hsts: bool = True,
        hsts_max_age: int = 31536000,
        hsts_include_subdomains: bool = True,
        hsts_preload: bool = False,
        csp_policy: str | None = None,
        permissions_policy: str | None = None,
        x_frame_options: str = "DENY",
        referrer_policy: str = "strict-origin-when-cross-origin",
    ):
        super().__init__(app)
        self.csp_policy = csp_policy
        self.permissions_policy = permissions_policy
        self.x_frame_options = x_frame_options
        self.referrer_policy = referrer_policy

        self._hsts_value: str | None = None
        if enable_hsts:
            hsts_parts = [f"max-age={hsts_max_age}"]
            if hsts_include_subdomains:
                hsts_parts.append("includeSubDomains")
            if hsts_preload:
                hsts_parts.append("preload")
            self._hsts_value = "; ".join(hsts_parts)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = self.x_frame_options
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Referrer-Policy"] = self.referrer_policy

        if self._hsts_value:
            response.headers["Strict-Transport-Security"] = self._hsts_value

        if request.url.path in DOCS_PATHS:
            response.headers["Content-Security-Policy"] = DOCS_CSP
        elif self.csp_policy:
            response.headers["Content-Security-Policy"] = self.csp_policy

        if self.permissions_policy:
            response.headers["Permissions-Policy"] = self.permissions_policy

        return response
