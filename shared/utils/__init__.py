"""
Utility modules for the plan services.

Provides common utilities for:
- Structured logging
- Error handling
"""

from .logging import setup_logging
from .errors import (
    DataProcessingError,
    NotFoundError,
    AlreadyExistsError,
    IdentityMismatchError,
    PreconditionRequiredError,
    PreconditionFailedError,
    ValidationError,
    SerializationError,
    StorageError,
    PublishError,
    IndexWriteError,
    ConfigurationError,
)

__all__ = [
    "setup_logging",
    "DataProcessingError",
    "NotFoundError",
    "AlreadyExistsError",
    "IdentityMismatchError",
    "PreconditionRequiredError",
    "PreconditionFailedError",
    "ValidationError",
    "SerializationError",
    "StorageError",
    "PublishError",
    "IndexWriteError",
    "ConfigurationError",
]
