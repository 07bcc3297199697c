"""Middleware for the storefront API.

- Correlation context for request tracing
- Request rate limiting (Redis sliding window, in-process fallback)
- Security headers (HSTS, CSP, X-Frame-Options, etc.)

CORS and gzip use starlette's CORSMiddleware and GZipMiddleware.
"""

from storefront.api.middleware.correlation import CorrelationMiddleware
from storefront.api.middleware.rate_limit import RateLimitConfig, RateLimitMiddleware
from storefront.api.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "CorrelationMiddleware",
    "RateLimitConfig",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
]
