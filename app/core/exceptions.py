class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass

class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass

class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass

class ValidationError(AppError):
    """Raised when input validation fails."""
    pass

class PipelineError(AppError):
    """Raised when a file cannot make it through the classify/generate pipeline."""
    pass

class CompanyDetectionFailedError(PipelineError):
    """Raised when no company could be resolved for a file."""
    pass

class UnsupportedCompanyError(PipelineError):
    """Raised when no work-order prompt is registered for a company."""

    def __init__(self, company_id: str, original_error: Exception = None):
        super().__init__(
            f"Unsupported company or prompt configuration for: {company_id}",
            original_error=original_error,
        )
        self.company_id = company_id

class WorkOrderPersistenceError(PipelineError):
    """Raised when the generated work order could not be stored."""
    pass

class InvalidStateTransitionError(AppError):
    """Raised when a process state transition would move backwards."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition from '{current}' to '{target}'")
        self.current = current
        self.target = target

class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""
    pass
