class MasPatasError(Exception):
    """Base error carrying a message that can be shown to the user as-is."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MasPatasError):
    status_code = 404


class PermissionDeniedError(MasPatasError):
    status_code = 403


class ValidationError(MasPatasError):
    status_code = 422


class ExternalServiceError(MasPatasError):
    status_code = 502
