"""Configuration validation for the home server backup tool."""

from typing import Any, Dict, List

import jsonschema

from .schemas import CONFIG_SCHEMA


class ConfigValidator:
    """Validates the home server configuration document."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate the configuration document.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: [str(p) for p in e.path]):
            location = ".".join(str(part) for part in error.path) or "<root>"
            errors.append(f"{location}: {error.message}")

        return errors
