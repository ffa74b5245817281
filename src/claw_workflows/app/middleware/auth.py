"""Bearer token authentication middleware.

Protects /api/* routes when accessed from non-localhost origins (e.g. the
dashboard served through a tunnel). Localhost requests bypass auth so the
desktop shell keeps working without a token.
"""

import ipaddress
import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from claw_workflows.app import config
from claw_workflows.app.services.logging_service import get_logger

logger = get_logger(__name__)

# Localhost addresses that bypass auth
_LOCALHOST_ADDRS = {"127.0.0.1", "::1", "localhost"}

_generated_token: str | None = None


def _is_localhost(request: Request) -> bool:
    """Check if the request originates from localhost."""
    client = request.client
    if not client:
        return False
    host = client.host
    if host in _LOCALHOST_ADDRS:
        return True
    try:
        addr = ipaddress.ip_address(host)
        return addr.is_loopback
    except ValueError:
        return False


def generate_api_token() -> str:
    """Generate a cryptographically secure API token."""
    return secrets.token_urlsafe(32)


def get_or_create_api_token() -> str:
    """The configured API token, or one generated for the lifetime of the process."""
    global _generated_token
    if config.API_TOKEN:
        return config.API_TOKEN
    if _generated_token is None:
        _generated_token = generate_api_token()
        logger.info("Generated API token for remote access (set CLAW_WORKFLOWS_API_TOKEN to pin it)")
    return _generated_token


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Middleware that requires a bearer token for non-localhost API requests.

    - Localhost requests: always allowed (no token needed)
    - Non-localhost requests to /api/*: require valid Authorization header
    - Non-API requests (health check): always allowed
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # Only protect /api/* routes
        if not path.startswith(f"{config.API_PREFIX}/"):
            return await call_next(request)

        if _is_localhost(request):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        provided_token = auth_header[7:] if auth_header.startswith("Bearer ") else ""

        if not provided_token:
            return JSONResponse(
                status_code=401,
                content={"error": "Authorization required. Provide Bearer token."},
            )

        if not secrets.compare_digest(provided_token, get_or_create_api_token()):
            return JSONResponse(
                status_code=403,
                content={"error": "Invalid API token."},
            )

        return await call_next(request)
