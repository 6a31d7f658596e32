"""
Generation error taxonomy.

Providers translate their own failures into these so the gateway can decide
between advancing the fallback chain and failing the task.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    MISSING_DEPENDENCY = "missing_dependency"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NO_OUTPUT_PRODUCED = "no_output_produced"
    UNSUPPORTED_OUTPUT_REFERENCE = "unsupported_output_reference"
    TRANSPORT_ERROR = "transport_error"


class GenerationError(Exception):
    """Base class for every failure the orchestrator records on a node."""

    kind: ErrorKind = ErrorKind.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        provider_id: Optional[str] = None,
        variants_tried: int = 0,
        variants_total: Optional[int] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body
        self.provider_id = provider_id
        self.variants_tried = variants_tried
        self.variants_total = variants_total
        super().__init__(message)

    def describe(self) -> str:
        """Human-readable summary stored as the node's error message."""
        if not self.provider_id:
            return self.message
        if self.variants_total and 1 < self.variants_tried < self.variants_total:
            return (
                f"{self.variants_tried} of {self.variants_total} models tried. "
                f"Last error from {self.provider_id}: {self.message}"
            )
        if self.variants_tried > 1:
            return (
                f"All {self.variants_tried} models failed. "
                f"Last error from {self.provider_id}: {self.message}"
            )
        return f"{self.message} (model: {self.provider_id})"

    def __str__(self) -> str:
        return self.describe()


class MissingDependency(GenerationError):
    kind = ErrorKind.MISSING_DEPENDENCY


class RateLimited(GenerationError):
    kind = ErrorKind.RATE_LIMITED


class GenerationTimeout(GenerationError):
    kind = ErrorKind.TIMEOUT


class NoOutputProduced(GenerationError):
    kind = ErrorKind.NO_OUTPUT_PRODUCED


class UnsupportedOutputReference(GenerationError):
    kind = ErrorKind.UNSUPPORTED_OUTPUT_REFERENCE


class TransportError(GenerationError):
    kind = ErrorKind.TRANSPORT_ERROR
