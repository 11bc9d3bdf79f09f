"""
Handler for .tfvars files passed with -var-file.
"""

import logging
import os
from typing import Any, Dict, Iterable, List

import hcl2

from ..errors import ConfigurationError
from .terraform_parser import unwrap

logger = logging.getLogger(__name__)


class TfvarsHandler:
    """Parse Terraform .tfvars files."""

    @staticmethod
    def parse_tfvars(file_path: str) -> Dict[str, Any]:
        """
        Parse a .tfvars file and return variable name-value pairs.

        Args:
            file_path: Path to the .tfvars file.

        Returns:
            Dict of variable name to value.

        Raises:
            FileNotFoundError: If file does not exist.
            ValueError: If file cannot be parsed.
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                parsed = hcl2.load(f)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise ValueError(f"Failed to parse tfvars file {file_path}: {e}")

        return {
            key: unwrap(value) for key, value in parsed.items() if not key.startswith("__")
        }

    @staticmethod
    def load_var_file(file_path: str) -> Dict[str, Any]:
        """
        Validate and load a var file before it is handed to Terraform.

        JSON var files (*.tfvars.json) are accepted without parsing since
        Terraform validates them itself.

        Raises:
            ConfigurationError: If the file is missing or unparseable
        """
        if not os.path.isfile(file_path):
            raise ConfigurationError(f"Var file does not exist: {file_path}")

        if file_path.endswith(".json"):
            return {}

        try:
            return TfvarsHandler.parse_tfvars(file_path)
        except ValueError as e:
            raise ConfigurationError(str(e))

    @staticmethod
    def sensitive_values(values: Dict[str, Any], names: Iterable[str]) -> List[str]:
        """Return the string values of the named variables, for redaction."""
        result = []
        for name in names:
            value = values.get(name)
            if value is None or isinstance(value, (bool, dict, list)):
                continue
            result.append(str(value))
        return result
