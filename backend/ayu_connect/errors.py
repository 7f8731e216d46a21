class DomainError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message=None, data=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.data = data


class ValidationError(DomainError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(DomainError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(DomainError):
    status_code = 403
    default_message = "Not authorized"


class NotFound(DomainError):
    status_code = 404
    default_message = "Not found"


class TokenExpired(DomainError):
    """The token existed but its expiry has passed."""

    status_code = 410
    default_message = "Access token has expired"

    def __init__(self, message=None):
        super().__init__(message, data={"status": "expired"})


class TokenRevoked(DomainError):
    """The owner switched the token off."""

    status_code = 410
    default_message = "Access token has been revoked"

    def __init__(self, message=None):
        super().__init__(message, data={"status": "revoked"})
