"""
Utility functions for terrarun.
"""

from .logger import setup_logging
from .process import (
    kill_process_group,
    kill_process_tree,
    process_group_kwargs,
    subprocess_creation_flags,
)
from .validators import resolve_terraform_binary, validate_project_is_terraform


__all__ = [
    "setup_logging",
    "kill_process_group",
    "kill_process_tree",
    "process_group_kwargs",
    "subprocess_creation_flags",
    "resolve_terraform_binary",
    "validate_project_is_terraform",
]
