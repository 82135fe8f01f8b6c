from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST
from typing import Any, Dict, Optional, Union


class AppException(Exception):
    def __init__(self, message: str,
                 error_code: Optional[str] = None,
                 status_code: int = HTTP_400_BAD_REQUEST,
                 details: Optional[Dict[str, Any]] = None,):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}', status_code={self.status_code})"


class ValidationException(AppException):
    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        self.value = value

        exception_details = details or {}
        if field:
            exception_details["field"] = field
        if value is not None:
            exception_details["value"] = value

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=exception_details,
            status_code=422,
        )


class NotFoundError(AppException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[Union[str, int]] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.resource = resource
        self.resource_id = resource_id

        if not message:
            if resource_id:
                message = f"{resource} with ID '{resource_id}' not found"
            else:
                message = f"{resource} not found"

        exception_details = details or {}
        exception_details.update({
            "resource": resource,
            "resource_id": str(resource_id) if resource_id is not None else None,
        })

        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            details=exception_details,
            status_code=404,
        )


class ConflictError(AppException):
    """Exception raised when there's a conflict with current state."""

    def __init__(
        self,
        message: str = "Conflict with current state",
        resource: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.resource = resource

        exception_details = details or {}
        if resource:
            exception_details["resource"] = resource

        super().__init__(
            message=message,
            error_code="CONFLICT",
            details=exception_details,
            status_code=409,
        )


class BadRequestError(AppException):
    """Exception raised for bad requests."""

    def __init__(
        self,
        message: str = "Bad request",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_code="BAD_REQUEST",
            details=details,
            status_code=400,
        )


class DatabaseError(AppException):
    """Exception raised for database operation failures."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details=details,
            status_code=500,
        )


class ServiceError(AppException):
    """Generic service-layer failure."""

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="SERVICE_ERROR",
            details=details,
            status_code=500,
        )


# Ingestion errors

class MalformedInput(ValidationException):
    """The CSV does not have the two header rows plus data."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)
        self.error_code = "MALFORMED_INPUT"


class SchemaMismatch(ValidationException):
    """A required column could not be mapped from the machine header row."""

    def __init__(
        self,
        message: str,
        missing_columns: Optional[list] = None,
        found_headers: Optional[list] = None,
    ):
        super().__init__(
            message=message,
            details={
                "missing_columns": missing_columns or [],
                "found_headers": found_headers or [],
            },
        )
        self.error_code = "SCHEMA_MISMATCH"


class StorageFailure(AppException):
    """Blob storage put/get/delete failed."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.path = path
        exception_details = details or {}
        if path:
            exception_details["path"] = path
        super().__init__(
            message=message,
            error_code="STORAGE_FAILURE",
            details=exception_details,
            status_code=502,
        )


class FileStorageError(StorageFailure):
    """Raised by storage backends."""


class PersistenceFailure(DatabaseError):
    """A batch insert of records failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)
        self.error_code = "PERSISTENCE_FAILURE"


# Job and merge errors

class InvalidJobTransition(ConflictError):
    def __init__(self, job_id: Any, current_status: str, target_status: str):
        super().__init__(
            message=f"Upload job {job_id} cannot move from {current_status} to {target_status}",
            resource="UploadJob",
            details={
                "job_id": str(job_id),
                "current_status": current_status,
                "target_status": target_status,
            },
        )
        self.error_code = "INVALID_JOB_TRANSITION"


class MergeError(AppException):
    def __init__(self, message: str, upload_id: Any = None, details: Optional[Dict[str, Any]] = None):
        exception_details = details or {}
        if upload_id is not None:
            exception_details["upload_id"] = str(upload_id)
        super().__init__(
            message=message,
            error_code="MERGE_ERROR",
            details=exception_details,
            status_code=500,
        )


class JoinInconsistency(AppException):
    """
    A primary record whose merge key has no secondary counterpart.

    Not raised by the merge itself: ``MergeService.build_merged_records``
    looks the key up in the secondary's verifications, and a miss leaves the
    record with ``data_verified`` 0. Callers that want strict linkage checks
    raise it themselves.
    """

    def __init__(self, merge_key: str):
        super().__init__(
            message=f"No linked record for merge key '{merge_key}'",
            error_code="JOIN_INCONSISTENCY",
            details={"merge_key": merge_key},
            status_code=409,
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render application exceptions with the standard response envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
    )
