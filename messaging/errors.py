from typing import Optional


class MessagingError(Exception):

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class AuthorizationError(MessagingError):

    status_code = 403
    default_message = "Access denied"


class AuthenticationError(AuthorizationError):

    status_code = 401
    default_message = "User not authenticated"


class ConflictError(MessagingError):

    status_code = 409
    default_message = "Conflict"


class NotFoundError(MessagingError):

    status_code = 404
    default_message = "Not found"


class ValidationError(MessagingError):

    status_code = 400
    default_message = "Invalid request"


class TransportError(MessagingError):
    """Connection-level failure. Recovered by the reconnect policy, never shown to users."""

    status_code = 503
    default_message = "Transport unavailable"


_BY_STATUS = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def error_for_status(status_code: int, message: Optional[str] = None) -> MessagingError:
    cls = _BY_STATUS.get(status_code, MessagingError)
    return cls(message or f"Request failed ({status_code})", status_code=status_code)
