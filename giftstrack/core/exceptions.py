from typing import Optional, Any


class GiftsTrackError(Exception):
    """
    Base exception for the giftstrack client.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: Optional[int] = None, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NetworkError(GiftsTrackError):
    """
    Raised when a remote call fails before a response is received.
    """
    def __init__(self, message: str = "Network error. Please check your internet connection.", details: Optional[Any] = None):
        super().__init__(message, code="NETWORK_ERROR", details=details)


class RequestTimeoutError(NetworkError):
    """
    Raised when a remote call exceeds the client-side timeout.
    """
    def __init__(self, message: str = "The server is taking too long to respond. Please try again.", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "TIMEOUT"


class ApiError(GiftsTrackError):
    """
    Raised when the API answers with an error status or an unsuccessful envelope.
    """
    def __init__(self, message: str = "An error occurred", status_code: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message, code="API_ERROR", status_code=status_code, details=details)


class AuthenticationError(GiftsTrackError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class SessionExpiredError(AuthenticationError):
    """
    Raised when the bearer token is expired or rejected by the server.
    """
    def __init__(self, message: str = "Your session has expired. Please sign in again.", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "SESSION_EXPIRED"


class CacheMissError(GiftsTrackError):
    """
    Raised when no usable cached value exists and the network cannot be used.
    """
    def __init__(self, message: str = "You are offline and no cached data is available", details: Optional[Any] = None):
        super().__init__(message, code="CACHE_MISS", details=details)


class ValidationError(GiftsTrackError):
    """
    Raised when a fetched or cached payload fails its schema.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)
