"""Service-layer exceptions, translated to HTTP responses by the routers."""


class MessagingError(Exception):
    """Base class for messaging failures that carry a user-facing message."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ForbiddenError(MessagingError):
    """Actor is authenticated but may not perform this operation."""

    status_code = 403


class NotFoundError(MessagingError):
    """Referenced message, thread or user does not exist (or is not visible)."""

    status_code = 404


class MessageValidationError(MessagingError):
    """Missing or malformed input; nothing was written."""

    status_code = 422
