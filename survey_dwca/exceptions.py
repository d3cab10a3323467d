"""
Custom exceptions for the archive pipeline with structured error context.

Exception Hierarchy:
    PipelineError (base)
    ├── ExtractionError
    ├── SchemaValidationError
    ├── TermRegistryError
    ├── IdentifierCollisionError
    ├── NameResolutionError
    ├── ArchiveError
    └── PublishError

Only NameResolutionError is recoverable: the taxonomic resolver catches it
and treats the name as unresolved. Everything else stops the run.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (dataset, file, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


class ExtractionError(PipelineError):
    """
    Raised when the raw export cannot be read.

    Context should include:
        - source: Path or URL of the export
    """
    pass


class SchemaValidationError(PipelineError):
    """
    Raised when the column mapping schema or a raw record has the wrong shape.

    Context should include:
        - slot / class_name: The offending schema element
        - record_index: Index of the raw record (if applicable)
    """
    pass


class TermRegistryError(PipelineError):
    """
    Raised when a term vocabulary document cannot be fetched or parsed.

    Context should include:
        - source: Path or URL of the vocabulary
    """
    pass


class IdentifierCollisionError(PipelineError):
    """
    Raised when two distinct dataset titles derive the same identifier.
    Fix by appending a correction rule in survey_dwca.identifiers.

    Context should include:
        - collisions: Mapping of identifier -> colliding titles
    """
    pass


class NameResolutionError(PipelineError):
    """
    Raised by the name parser and taxonomic authority clients.
    Never escapes the taxonomic resolver.
    """
    pass


class ArchiveError(PipelineError):
    """
    Raised when a dataset archive cannot be written.

    Context should include:
        - dataset_id: The dataset being packaged
    """
    pass


class PublishError(PipelineError):
    """
    Raised when the remote sync fails.

    Context should include:
        - bucket / prefix: The destination
        - key: The object that failed (if applicable)
    """
    pass
