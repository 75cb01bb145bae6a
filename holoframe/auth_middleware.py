"""
Shared-password middleware for the admin file browser.

All /admin/* endpoints require an X-Admin-Password header matching the
ADMIN_PASSWORD environment variable.
"""

import os
import secrets
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")
ADMIN_PREFIX = "/admin"


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """Reject /admin/* requests without the admin password."""

    def __init__(self, app, password: str = None):
        super().__init__(app)
        self.password = ADMIN_PASSWORD if password is None else password

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(ADMIN_PREFIX):
            return await call_next(request)

        # Constant-time compare avoids timing attacks
        provided = request.headers.get("X-Admin-Password", "")
        if not self.password or not secrets.compare_digest(
            provided.encode("utf-8"), self.password.encode("utf-8")
        ):
            logger.warning(f"Rejected admin request to {request.url.path}")
            return JSONResponse(
                status_code=401,
                content={"success": False, "error": "Invalid or missing admin password"},
            )

        return await call_next(request)
