class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulingValidationError(AppError):
    """Raised when a candidate entry, recurrence rule or strategy config is malformed."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )

class CollaboratorUnavailableError(AppError):
    """Raised when the persistence store or calendar provider cannot answer."""
    def __init__(self, collaborator: str, message: str | None = None):
        super().__init__(
            message or f"{collaborator} is currently unavailable",
            status_code=503,
            details={"collaborator": collaborator, "retryable": True},
        )

class UndoFailedError(AppError):
    """Raised when applying the inverse of a claimed undo operation fails."""
    def __init__(self, operation_id: str, message: str):
        super().__init__(message, status_code=500, details={"operation_id": operation_id})

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class SchedulingConflictError(AppError):
    """Raised when a mutation would violate scheduling constraints and was not forced."""
    def __init__(self, message: str, conflicts: list[dict]):
        super().__init__(message, status_code=409, details={"conflicts": conflicts})
