"""
Domain exceptions raised by services. api/middleware/error_handler.py maps them to HTTP.
"""
from typing import Any


class PortfolioError(Exception):
    """Base class for errors with a user-facing message."""

    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(PortfolioError):
    """Malformed or oversized input."""

    status_code = 400


class NotFoundError(PortfolioError):
    status_code = 404


class ConflictError(PortfolioError):
    """Username or email already in use."""

    status_code = 409


class PersistenceError(PortfolioError):
    """Database write failed for a reason other than a conflict."""

    status_code = 500


class UploadError(PortfolioError):
    """A file could not be accepted or stored. `asset` names which one."""

    status_code = 400

    def __init__(self, message: str, asset: str | None = None, status_code: int | None = None):
        super().__init__(message, details={"asset": asset} if asset else None)
        self.asset = asset
        if status_code is not None:
            self.status_code = status_code


class AuthenticationRequired(PortfolioError):
    status_code = 401


class AccessDenied(PortfolioError):
    """Authenticated, but not the owner."""

    status_code = 403
