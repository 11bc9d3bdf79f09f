"""
Validation utilities for terrarun.
"""

import os
import shutil
from pathlib import Path

from ..errors import ConfigurationError


def resolve_terraform_binary(terraform_binary: str = "terraform") -> str:
    """
    Locate the Terraform executable on the search path.

    Args:
        terraform_binary: Name or path of the terraform binary

    Returns:
        Absolute path to the executable

    Raises:
        ConfigurationError: If the binary cannot be found or is not executable
    """
    resolved = shutil.which(terraform_binary)
    if not resolved:
        raise ConfigurationError(
            f"Terraform executable '{terraform_binary}' not found on PATH"
        )
    return os.path.abspath(resolved)


def validate_project_is_terraform(project_path: str) -> bool:
    """
    Check if a directory appears to be a Terraform project.

    A valid Terraform project should have at least one .tf or .tf.json file.
    """
    path = Path(project_path)

    if not path.exists() or not path.is_dir():
        return False

    return any(path.glob("*.tf")) or any(path.glob("*.tf.json"))
