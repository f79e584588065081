"""Trust-header middleware — strip client-supplied identity headers.

Learn: After /auth/validate succeeds, the gateway forwards the caller's
identity to downstream services as two headers:

    X-User-Email   subject (email or guest alias)
    X-User-Type    "guest" | "registered"

Downstream services trust these blindly, so they must only ever come
from this service. Any copy a client sends in is dropped before the
request reaches a route.

Pure ASGI (not BaseHTTPMiddleware) because it rewrites the request scope.
"""

from newtab_auth.services.identity_service import ValidatedIdentity

HEADER_USER_EMAIL = "X-User-Email"
HEADER_USER_TYPE = "X-User-Type"

_TRUST_HEADERS = {HEADER_USER_EMAIL.lower().encode(), HEADER_USER_TYPE.lower().encode()}


def trust_headers(identity: ValidatedIdentity) -> dict[str, str]:
    """Headers asserting a validated identity to downstream services."""
    return {
        HEADER_USER_EMAIL: identity.subject,
        HEADER_USER_TYPE: identity.role.value,
    }


class StripTrustHeadersMiddleware:
    """Remove inbound X-User-Email / X-User-Type from every HTTP request."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            headers = scope.get("headers") or []
            if any(name in _TRUST_HEADERS for name, _ in headers):
                scope = dict(scope)
                scope["headers"] = [
                    (name, value) for name, value in headers
                    if name not in _TRUST_HEADERS
                ]
        await self.app(scope, receive, send)
