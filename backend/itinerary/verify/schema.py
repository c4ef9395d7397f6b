"""Schema validation of generation inputs and outputs.

Validators never raise; errors come back itemized as ``"path: message"``.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from backend.itinerary.errors import format_validation_errors
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.output import GeneratorOutput


class InputValidationResult(BaseModel):
    """Outcome of validating a generation input."""

    is_valid: bool
    input: GeneratorInput | None = None
    errors: list[str] = Field(default_factory=list)


class OutputValidationResult(BaseModel):
    """Outcome of validating a generation output."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)


def validate_input(raw: GeneratorInput | Mapping[str, Any]) -> InputValidationResult:
    """Validate a generation input.

    Args:
        raw: A model (re-checked through its JSON form) or a raw dict.

    Returns:
        Result carrying the parsed input when valid.
    """
    payload = raw.model_dump(mode="json") if isinstance(raw, GeneratorInput) else dict(raw)
    try:
        parsed = GeneratorInput.model_validate(payload)
    except ValidationError as e:
        return InputValidationResult(is_valid=False, errors=format_validation_errors(e))
    return InputValidationResult(is_valid=True, input=parsed)


def validate_output(raw: GeneratorOutput | Mapping[str, Any]) -> OutputValidationResult:
    """Validate a generation output against the full output schema."""
    payload = raw.model_dump(mode="json") if isinstance(raw, GeneratorOutput) else dict(raw)
    try:
        GeneratorOutput.model_validate(payload)
    except ValidationError as e:
        return OutputValidationResult(is_valid=False, errors=format_validation_errors(e))
    return OutputValidationResult(is_valid=True)
