"""API middleware."""

from sigma_signet.entrypoints.api.middleware.sigma_auth import (
    BROWSER_SESSION_COOKIE,
    SESSION_COOKIE,
    SigmaAuthMiddleware,
)

__all__ = ["BROWSER_SESSION_COOKIE", "SESSION_COOKIE", "SigmaAuthMiddleware"]
