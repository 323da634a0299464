"""Error hierarchy of the RAG bridge.

Every error carries a human readable message, an optional details dict and a
category string that is reported back in structured results
(e.g. ProcessDocumentResult.error_type).
"""

from typing import Any


class RAGBridgeError(Exception):
    """Base exception for all errors raised by the RAG bridge."""

    category = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


##########################################
############### VALIDATION ###############
##########################################

class ValidationError(RAGBridgeError):
    """Raised when caller input is invalid (missing field, bad type, oversized file)."""

    category = "validation"

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class UnsupportedFormatError(ValidationError):
    """Raised when a file extension or magic header does not match a supported reader."""

    def __init__(self, file_name: str, supported: list[str] | None = None) -> None:
        details: dict[str, Any] = {"file_name": file_name}
        if supported:
            details["supported"] = supported
        super().__init__(f"Unsupported file format: {file_name}", details=details)


class EmptyFileError(ValidationError):
    """Raised when a document buffer is empty."""

    def __init__(self, file_name: str = "") -> None:
        super().__init__(f"File is empty: {file_name}" if file_name else "File is empty", details={"file_name": file_name})


class FileTooLargeError(ValidationError):
    """Raised when a document exceeds the configured maximum size."""

    def __init__(self, size: int, max_size: int, size_label: str = "", max_label: str = "") -> None:
        super().__init__(
            f"File too large: {size_label or size} exceeds maximum of {max_label or max_size}",
            details={"size": size, "max_size": max_size},
        )


##########################################
################# FORMAT #################
##########################################

class FormatError(RAGBridgeError):
    """Raised when a document cannot be parsed."""

    category = "format"


class CorruptFileError(FormatError):
    """Raised when the parser rejects a document that passed validation."""

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(f"Corrupt or unreadable document '{file_name}': {reason}", details={"file_name": file_name})


##########################################
############### DEPENDENCY ###############
##########################################

class DependencyError(RAGBridgeError):
    """Raised when the embedding engine or vector store is unreachable or misconfigured."""

    category = "dependency"

    def __init__(self, message: str, engine: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if engine:
            details["engine"] = engine
        super().__init__(message, details)


class DependencyTimeoutError(DependencyError):
    """Raised when a request to an external engine exceeds its timeout."""


class ModelNotConfiguredError(DependencyError):
    """Raised when no embedding model was given and none is configured."""

    def __init__(self) -> None:
        super().__init__("No embedding model configured")


class ModelUnavailableError(DependencyError):
    """Raised when the embedding model is not installed or reports no dimensions."""

    def __init__(self, model_name: str, reason: str = "not installed") -> None:
        super().__init__(f"Embedding model '{model_name}' is unavailable: {reason}", details={"model": model_name})


##########################################
############# COMPATIBILITY ##############
##########################################

class CompatibilityError(RAGBridgeError):
    """Raised when an operation would mix vector dimensions in one collection."""

    category = "compatibility"


class DimensionMismatchError(CompatibilityError):
    """Raised when a vector size does not match the size of an existing collection."""

    def __init__(self, expected: int, actual: int, collection: str | None = None) -> None:
        details: dict[str, Any] = {"expected": expected, "actual": actual}
        where = ""
        if collection:
            details["collection"] = collection
            where = f" in collection '{collection}'"
        super().__init__(
            f"Vector dimension mismatch{where}: collection uses {expected}, embedding model produces {actual}",
            details=details,
        )
