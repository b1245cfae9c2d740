"""
Domain Exceptions
Error taxonomy shared by the services and translated to HTTP responses in app.py
"""

from typing import Any, Dict, Optional


class AdherenceHubError(Exception):
    """
    Base exception for all AdherenceHub domain errors.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AdherenceHubError, ValueError):
    """
    Malformed or missing required input to a command.
    Never retried automatically.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(AdherenceHubError, LookupError):
    """
    Raised only by mutations that require an existing record.
    Read operations return empty results instead.
    """

    def __init__(self, entity_type: str, entity_id: Any, message: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        msg = message or f"{entity_type} {entity_id} not found"
        super().__init__(
            msg,
            "NOT_FOUND",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class DependencyError(AdherenceHubError):
    """Persistence collaborator failure (connection, permission, quota)"""

    def __init__(self, message: str, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, "DEPENDENCY_ERROR", details)
        self.operation = operation


def require_identity(value: Optional[str], field: str) -> str:
    """Validate an opaque identity string (patient_id, user_id, ...)"""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


__all__ = [
    "AdherenceHubError",
    "ValidationError",
    "NotFoundError",
    "DependencyError",
    "require_identity",
]
