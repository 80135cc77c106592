from __future__ import annotations


class DashboardError(Exception):
    """
    Base error rendered to HTTP callers as {"message": ...}.
    Subclasses only fix the status code.
    """
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationFailure(DashboardError):
    status_code = 401


class NotFound(DashboardError):
    status_code = 404


class UpstreamFailure(DashboardError):
    status_code = 500
