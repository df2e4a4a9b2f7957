"""
Custom error classes for the plan services.

Provides structured error handling with error codes,
context information, HTTP status mapping and proper exception chaining.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Error context information."""
    service: str
    operation: str
    plan_id: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class DataProcessingError(Exception):
    """Base exception for plan processing errors."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        if self.context:
            result["context"] = {
                "service": self.context.service,
                "operation": self.context.operation,
                "plan_id": self.context.plan_id,
                "correlation_id": self.context.correlation_id,
                "metadata": self.context.metadata,
            }

        return result


class NotFoundError(DataProcessingError):
    """Error raised when an aggregate does not exist."""

    http_status = 404

    def __init__(
        self,
        message: str,
        object_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            context=context,
            details=details or {}
        )
        self.object_id = object_id

        if object_id:
            self.details["object_id"] = object_id


class AlreadyExistsError(DataProcessingError):
    """Error raised when creating an aggregate whose id is already stored."""

    http_status = 409

    def __init__(
        self,
        message: str,
        object_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="ALREADY_EXISTS",
            context=context,
            details=details or {}
        )
        self.object_id = object_id

        if object_id:
            self.details["object_id"] = object_id


class IdentityMismatchError(DataProcessingError):
    """Error raised when a patch carries an id that conflicts with the stored one."""

    http_status = 400

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        expected_id: Optional[str] = None,
        actual_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="IDENTITY_MISMATCH",
            context=context,
            details=details or {}
        )
        self.entity = entity
        self.expected_id = expected_id
        self.actual_id = actual_id

        if entity:
            self.details["entity"] = entity
        if expected_id is not None:
            self.details["expected_id"] = expected_id
        if actual_id is not None:
            self.details["actual_id"] = actual_id


class PreconditionRequiredError(DataProcessingError):
    """Error raised when a conditional write is attempted without a tag."""

    http_status = 428

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PRECONDITION_REQUIRED",
            context=context,
            details=details or {}
        )


class PreconditionFailedError(DataProcessingError):
    """Error raised when the supplied tag does not match the stored tag."""

    http_status = 412

    def __init__(
        self,
        message: str,
        object_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PRECONDITION_FAILED",
            context=context,
            details=details or {}
        )
        self.object_id = object_id

        if object_id:
            self.details["object_id"] = object_id


class ValidationError(DataProcessingError):
    """Error raised when data validation fails."""

    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            context=context,
            details=details or {}
        )
        self.field = field
        self.value = value

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class SerializationError(DataProcessingError):
    """Error raised when an aggregate cannot be encoded."""

    http_status = 400

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SERIALIZATION_ERROR",
            context=context,
            details=details or {}
        )
        self.entity = entity

        if entity:
            self.details["entity"] = entity


class StorageError(DataProcessingError):
    """Error raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            context=context,
            details=details or {}
        )
        self.operation = operation
        self.key = key

        if operation:
            self.details["operation"] = operation
        if key:
            self.details["key"] = key


class PublishError(DataProcessingError):
    """Error raised when a change event cannot be handed to Kafka."""

    def __init__(
        self,
        message: str,
        topic: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PUBLISH_ERROR",
            context=context,
            details=details or {}
        )
        self.topic = topic
        self.operation = operation

        if topic:
            self.details["topic"] = topic
        if operation:
            self.details["operation"] = operation


class IndexWriteError(DataProcessingError):
    """Error raised when the search index rejects a document write or delete."""

    def __init__(
        self,
        message: str,
        index: Optional[str] = None,
        document_id: Optional[str] = None,
        status: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="INDEX_WRITE_ERROR",
            context=context,
            details=details or {}
        )
        self.index = index
        self.document_id = document_id
        self.status = status

        if index:
            self.details["index"] = index
        if document_id:
            self.details["document_id"] = document_id
        if status is not None:
            self.details["status"] = status


class ConfigurationError(DataProcessingError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)


def create_error_context(
    service: str,
    operation: str,
    plan_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ErrorContext:
    """Create error context."""
    return ErrorContext(
        service=service,
        operation=operation,
        plan_id=plan_id,
        correlation_id=correlation_id,
        metadata=metadata or {}
    )
