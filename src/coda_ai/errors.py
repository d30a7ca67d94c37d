"""Error types raised by the Coda client and CLI."""


class CodaError(Exception):
    """API error with code and message."""

    def __init__(self, code: str, message: str, status_code: int = 0):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(f"{code}: {message}")


class AuthenticationError(CodaError):
    def __init__(self, message: str):
        super().__init__("AUTH_ERROR", message, 401)


class PermissionDeniedError(CodaError):
    def __init__(self, message: str):
        super().__init__("PERMISSION_ERROR", message, 403)


class NotFoundError(CodaError):
    def __init__(self, message: str):
        super().__init__("NOT_FOUND", message, 404)


class RateLimitError(CodaError):
    def __init__(self, message: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__("RATE_LIMIT", message, 429)


class ApiError(CodaError):
    """Any other non-2xx response."""

    def __init__(self, message: str, status_code: int):
        super().__init__("API_ERROR", message, status_code)


class ExportError(CodaError):
    def __init__(self, message: str):
        super().__init__("EXPORT_ERROR", message)


class ExportTimeoutError(CodaError):
    def __init__(self, message: str):
        super().__init__("EXPORT_TIMEOUT", message)


class ValidationError(CodaError):
    def __init__(self, message: str):
        super().__init__("VALIDATION", message)


class ConfigError(CodaError):
    def __init__(self, message: str):
        super().__init__("CONFIG", message)


class NotAllowedError(CodaError):
    """Blocked by the local permission settings, not by the API."""

    def __init__(self, message: str):
        super().__init__("NOT_ALLOWED", message)


def error_for_status(status_code: int, message: str) -> CodaError:
    """Classify a failed response by status code only."""
    if status_code == 401:
        return AuthenticationError(message)
    if status_code == 403:
        return PermissionDeniedError(message)
    if status_code == 404:
        return NotFoundError(message)
    if status_code == 429:
        return RateLimitError(message)
    return ApiError(message, status_code)
