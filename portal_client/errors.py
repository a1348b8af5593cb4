class PortalError(Exception):
    """Base class for client-side portal failures."""


class ValidationError(PortalError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AuthError(PortalError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidCredentials(AuthError):
    def __init__(self, reason: str = "Invalid credentials"):
        super().__init__(reason)


class NetworkUnavailable(AuthError):
    def __init__(self, reason: str = "Network unavailable"):
        super().__init__(reason)


class StorageError(PortalError):
    pass


class ApiError(PortalError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
