class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class DropServiceError(BaseServiceError):
    """Base exception for drop service errors."""
    pass

class DropNotFoundError(DropServiceError):
    """Raised when a drop is not found."""
    pass

class DatabaseError(Exception):
    """Exception raised for database-related errors."""
    pass
