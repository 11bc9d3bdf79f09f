"""
Terraform configuration parser.

This module parses Terraform HCL files to extract the variable
definitions and backend type a runner needs before launching Terraform.
"""

import glob
import os
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set

import hcl2

logger = logging.getLogger(__name__)


def unwrap(value: Any) -> Any:
    """
    Normalize a value returned by hcl2.

    Older hcl2 releases wrap scalars in single-element lists and newer
    ones keep the quotes around string literals.
    """
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    return value


def _is_true(value: Any) -> bool:
    value = unwrap(value)
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _block_items(blocks: Any):
    """Yield (label, body) pairs from an hcl2 labelled-block list."""
    if isinstance(blocks, dict):
        blocks = [blocks]
    for block in blocks or []:
        if not isinstance(block, dict):
            continue
        for label, body in block.items():
            if label.startswith("__"):
                continue
            yield unwrap(label), body if isinstance(body, dict) else {}


@dataclass
class TerraformVariable:
    """
    Represents a Terraform variable definition.

    Attributes:
        name: Variable name
        type: Variable type (string, number, bool, list, map, etc.)
        default: Default value (None if no default)
        sensitive: Whether variable is marked as sensitive
    """
    name: str
    type: str = "string"
    default: Optional[Any] = None
    sensitive: bool = False

    def is_required(self) -> bool:
        return self.default is None


class TerraformParser:
    """
    Parser for Terraform configuration files in one directory.

    Files that fail to parse are logged and skipped; Terraform itself
    reports syntax errors when it runs.
    """

    def __init__(self, project_path: str):
        self.project_path = project_path
        self._parsed: Optional[List[dict]] = None

    def _tf_files(self) -> List[str]:
        return sorted(glob.glob(os.path.join(glob.escape(self.project_path), "*.tf")))

    def _parse_all(self) -> List[dict]:
        if self._parsed is not None:
            return self._parsed

        parsed = []
        for tf_file in self._tf_files():
            try:
                with open(tf_file, 'r', encoding='utf-8') as f:
                    parsed.append(hcl2.load(f))
            except Exception as e:
                logger.error(f"HCL parse error in {tf_file}: {e}")

        self._parsed = parsed
        return parsed

    def parse_variables(self) -> List[TerraformVariable]:
        """
        Parse all .tf files in the project for variable blocks.

        Returns:
            List of TerraformVariable objects
        """
        variables = []
        for document in self._parse_all():
            for name, config in _block_items(document.get("variable")):
                variables.append(TerraformVariable(
                    name=name,
                    type=str(unwrap(config.get("type", "string"))),
                    default=unwrap(config["default"]) if "default" in config else None,
                    sensitive=_is_true(config.get("sensitive", False)),
                ))

        logger.debug(f"Parsed {len(variables)} variables in {self.project_path}")
        return variables

    def sensitive_variable_names(self) -> Set[str]:
        """Names of variables declared with sensitive = true."""
        return {variable.name for variable in self.parse_variables() if variable.sensitive}

    def detect_backend(self) -> str:
        """
        Return the backend type declared in a terraform block.

        Returns:
            Backend type (e.g. "s3"), "cloud" for Terraform Cloud blocks,
            or "local" if none is configured
        """
        for document in self._parse_all():
            for terraform_block in document.get("terraform") or []:
                if not isinstance(terraform_block, dict):
                    continue
                for backend_type, _ in _block_items(terraform_block.get("backend")):
                    return backend_type
                if terraform_block.get("cloud"):
                    return "cloud"
        return "local"
