"""Project configuration loading.

This module provides helpers for loading a build configuration from a
YAML or JSON file and validating it against the project schema.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from debmatrix.project.schema import BuildConfigSchema


class ConfigurationError(Exception):
    """Raised when the project configuration is missing or unusable."""

    def __init__(self, message: str, code: str = "configuration_error") -> None:
        """Initialize ConfigurationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one line per field."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"{location}: {item['msg']}")
    return "; ".join(lines)


def load_build_config(path: Path) -> BuildConfigSchema:
    """Load and validate a build configuration file.

    The file type is chosen by extension: ``.json`` is parsed as JSON,
    anything else as YAML.

    Args:
        path: Path to the configuration file.

    Returns:
        Validated BuildConfigSchema.

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid.
    """
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}", code="config_not_found"
        )

    try:
        if path.suffix.lower() == ".json":
            data = load_json(path)
        else:
            data = load_yaml(path)
    except (yaml.YAMLError, json.JSONDecodeError, ValueError) as e:
        raise ConfigurationError(
            f"Cannot parse {path}: {e}", code="config_parse_error"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read {path}: {e}", code="config_read_error"
        ) from e

    try:
        return BuildConfigSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration {path}: {format_validation_error(e)}",
            code="config_invalid",
        ) from e


__all__ = [
    "ConfigurationError",
    "format_validation_error",
    "load_build_config",
    "load_json",
    "load_yaml",
]
