"""Configuration validation, defaults and per-block merging."""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from backend.itinerary.errors import ConfigValidationError, format_validation_errors
from backend.itinerary.models.config import CONFIG_BLOCKS, GeneratorConfig

logger = logging.getLogger(__name__)


class ConfigValidationResult(BaseModel):
    """Outcome of validating a config object."""

    is_valid: bool
    config: GeneratorConfig | None = None
    errors: list[str] = Field(default_factory=list)


def default_config() -> GeneratorConfig:
    """Get the default generator configuration."""
    return GeneratorConfig()


def _as_dict(value: GeneratorConfig | Mapping[str, Any] | None) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, GeneratorConfig):
        return value.model_dump()
    return dict(value)


def _merge_dicts(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """One-level merge: blocks are replaced field-by-field, never dropped."""
    merged = dict(base)
    for block, patch in overrides.items():
        if block in CONFIG_BLOCKS and isinstance(patch, BaseModel):
            patch = patch.model_dump(exclude_unset=True)
        if block in CONFIG_BLOCKS and isinstance(patch, Mapping):
            merged[block] = {**base.get(block, {}), **patch}
        else:
            merged[block] = patch
    return merged


def validate_config(raw: GeneratorConfig | Mapping[str, Any]) -> ConfigValidationResult:
    """Validate a complete config object.

    Never raises; field-path errors are itemized in the result.
    """
    if isinstance(raw, GeneratorConfig):
        return ConfigValidationResult(is_valid=True, config=raw)
    try:
        config = GeneratorConfig.model_validate(dict(raw))
    except ValidationError as e:
        return ConfigValidationResult(is_valid=False, errors=format_validation_errors(e))
    return ConfigValidationResult(is_valid=True, config=config)


def validate_and_normalize_config(
    raw: GeneratorConfig | Mapping[str, Any] | None,
) -> ConfigValidationResult:
    """Validate a possibly partial config by merging it onto the defaults.

    Args:
        raw: Full or partial config; missing blocks and fields take defaults.

    Returns:
        Validation result with the normalized config when valid.
    """
    merged = _merge_dicts(default_config().model_dump(), _as_dict(raw))
    result = validate_config(merged)
    if not result.is_valid:
        logger.warning("config_invalid", extra={"errors": result.errors})
    return result


def merge_configs(
    base: GeneratorConfig,
    overrides: GeneratorConfig | Mapping[str, Any] | None,
) -> GeneratorConfig:
    """Merge overrides onto a base config, one block at a time.

    Blocks absent from ``overrides`` are kept from ``base``; inside a
    present block only the named fields change, siblings survive.

    Raises:
        ConfigValidationError: If the merged config is invalid.
    """
    if isinstance(overrides, GeneratorConfig):
        overrides = overrides.model_dump(exclude_unset=True)
    merged = _merge_dicts(base.model_dump(), _as_dict(overrides))
    result = validate_config(merged)
    if not result.is_valid or result.config is None:
        raise ConfigValidationError(result.errors)
    return result.config
