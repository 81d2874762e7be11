class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised for malformed or missing input, before any store access."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(AppError):
    """Raised when a referenced resource is missing or inconsistent with its parent."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=404, details=details)

    @classmethod
    def for_resource(cls, resource_type: str, resource_id: str) -> "NotFoundError":
        return cls(f"{resource_type} with id {resource_id} not found")


class ConflictError(AppError):
    """Raised when a write is blocked by an error-severity scheduling conflict."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class StoreUnavailableError(AppError):
    """Raised when the backing store cannot be reached. Callers may retry."""
    retry_after_seconds = 5

    def __init__(self, message: str = "Backing store is unavailable. Try again shortly."):
        super().__init__(message, status_code=503, details={"retryable": True})
