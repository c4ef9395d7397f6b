"""Exception types shared across the itinerary pipeline."""

from enum import Enum
from typing import Any

from pydantic import ValidationError


class ErrorCode(str, Enum):
    """Pipeline error classification codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    DATA_MISSING = "DATA_MISSING"
    CONFIG_ERROR = "CONFIG_ERROR"


class ItineraryError(Exception):
    """Base class for itinerary pipeline errors."""


class PipelineError(ItineraryError):
    """Raised by a generation stage; carries a classification code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: list[str] | dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"PipelineError(code={self.code.value!r}, message={self.message!r})"


class InputValidationError(ItineraryError):
    """Generation input is invalid even after default substitution."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Input validation failed: " + "; ".join(errors))
        self.errors = errors


class ConfigValidationError(ItineraryError):
    """A generator config failed schema validation at construction time."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Configuration validation failed: " + "; ".join(errors))
        self.errors = errors


class StorageError(ItineraryError):
    """A single storage tier failed an operation."""

    def __init__(self, tier: str, message: str) -> None:
        super().__init__(f"[{tier}] {message}")
        self.tier = tier


class StorageExhaustedError(ItineraryError):
    """No storage tier could persist the record."""

    def __init__(self, itinerary_id: str, failures: dict[str, str]) -> None:
        super().__init__("Failed to persist itinerary data")
        self.itinerary_id = itinerary_id
        self.failures = failures


def format_validation_errors(exc: ValidationError, prefix: str = "") -> list[str]:
    """Turn a pydantic ValidationError into ``"path: message"`` strings."""
    errors: list[str] = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err["loc"])
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        errors.append(f"{path or '<root>'}: {err['msg']}")
    return errors
