"""Custom exception classes for the application."""

class BaseGraderException(Exception):
    """Base exception for all application-specific errors."""
    pass

class ConfigError(BaseGraderException):
    """Error related to configuration loading or values."""
    pass

class AuthenticationError(BaseGraderException):
    """Missing or unusable Canvas credentials."""
    pass

class APIError(BaseGraderException):
    """Error interacting with the Canvas GraphQL or REST API."""
    def __init__(self, message: str, status_code: int | None = None, service: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.service = service

    def __str__(self) -> str:
        base = super().__str__()
        details = []
        if self.service:
            details.append(f"Service: {self.service}")
        if self.status_code:
            details.append(f"Status Code: {self.status_code}")
        if details:
            return f"{base} ({', '.join(details)})"
        return base

class AttachmentError(BaseGraderException):
    """Error fetching a submission attachment into the workspace."""
    pass

class UnsafeAttachmentNameError(AttachmentError):
    """Attachment display name would escape the submission workspace."""
    pass

class GradingError(BaseGraderException):
    """Error running the test command for a criterion."""
    pass
