from typing import Optional


class IsagipError(Exception):
    """Base class for errors the API turns into an error response"""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def payload(self) -> Optional[dict]:
        return None


class ValidationError(IsagipError):
    """Missing or malformed required field"""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def payload(self) -> Optional[dict]:
        return {"field": self.field} if self.field else None


class DuplicateError(ValidationError):
    """Username or email collision"""
    status_code = 409


class AuthError(IsagipError):
    """Bad credentials or an ended/expired session"""
    status_code = 401


class PermissionDenied(IsagipError):
    status_code = 403


class NotFoundError(IsagipError):
    """Referenced record no longer exists"""
    status_code = 404


class BackendUnavailable(IsagipError):
    """External record store unreachable"""
    status_code = 503

    def payload(self) -> Optional[dict]:
        return {"read_only": True}
