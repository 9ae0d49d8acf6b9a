from typing import Any, Optional


class BackendError(Exception):
    """Any failed call to the hosted backend (network or non-2xx)."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class AuthError(BackendError):
    pass


class NotFoundError(BackendError):
    pass
