"""Verification of generation inputs, outputs and plan structure."""

from .schema import (
    InputValidationResult,
    OutputValidationResult,
    validate_input,
    validate_output,
)
from .structure import validate_structure

__all__ = [
    "InputValidationResult",
    "OutputValidationResult",
    "validate_input",
    "validate_output",
    "validate_structure",
]
