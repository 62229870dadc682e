"""
Service Errors
Machine-readable error taxonomy raised by the service layer
"""

from typing import Dict, Any, Optional
from fastapi import HTTPException, status


class ServiceError(Exception):
    """Base class for errors surfaced to API callers"""
    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class InvalidRequestError(ServiceError):
    """Malformed or missing input, duplicate ids in one request"""
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class CapacityExceededError(InvalidRequestError):
    """A group add would overflow max_students"""
    code = "CAPACITY_EXCEEDED"


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class CascadeDeleteError(ServiceError):
    """A multi-step deletion stopped part way through"""
    code = "CASCADE_DELETE_FAILED"


class InternalServiceError(ServiceError):
    code = "INTERNAL_ERROR"


def internal_error(action: str, error: Exception) -> HTTPException:
    """Build the 500 response routers raise for unexpected failures"""
    return InternalServiceError(f"Failed to {action}: {str(error)}").to_http()
