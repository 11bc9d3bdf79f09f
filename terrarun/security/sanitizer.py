"""
Input sanitization and validation for terrarun.

This module provides input validation for everything that ends up in a
Terraform argument vector:
- Working directories and file paths
- Variable names and values
- Workspace names and resource addresses
- Durations such as -lock-timeout values
"""

import json
import os
import re
from typing import Any

from ..errors import ConfigurationError


class SecurityError(ConfigurationError):
    """Raised when a security validation fails."""
    pass


class InputSanitizer:
    """
    Provides input validation and sanitization methods.

    All methods raise SecurityError (or ConfigurationError for paths)
    if validation fails.
    """

    # Terraform variable name pattern: must start with letter/underscore,
    # can contain letters, digits, underscores, hyphens
    VARIABLE_NAME_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_-]*$')

    # Backend config keys may be dotted (e.g. "assume_role.role_arn")
    BACKEND_KEY_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_.-]*$')

    # Resource addresses: type.name, module.x.type.name, type.name["key"], data.x.y
    RESOURCE_ADDRESS_PATTERN = re.compile(r'^[\w.\[\]":/-]+$')

    # Terraform durations: 30s, 5m, 1h30m, 0s
    DURATION_PATTERN = re.compile(r'^(\d+(ms|s|m|h))+$')

    # Maximum lengths to prevent resource exhaustion
    MAX_VARIABLE_NAME_LENGTH = 255
    MAX_VARIABLE_VALUE_LENGTH = 4096
    MAX_WORKSPACE_NAME_LENGTH = 90    # Terraform limit
    MAX_ARG_LENGTH = 10000

    # Characters never allowed in plain string values
    BLOCKED_VALUE_CHARS = set('\x00\n\r')

    @staticmethod
    def sanitize_path(path: str) -> str:
        """
        Validate and normalize a working directory.

        Args:
            path: Directory path to validate

        Returns:
            Normalized absolute path

        Raises:
            ConfigurationError: If the path is empty, missing or not a directory
        """
        if not path:
            raise ConfigurationError("Working directory cannot be empty")

        try:
            abs_path = os.path.realpath(os.path.expanduser(path))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Invalid path: {e}")

        if not os.path.exists(abs_path):
            raise ConfigurationError(f"Working directory does not exist: {path}")

        if not os.path.isdir(abs_path):
            raise ConfigurationError(f"Working directory is not a directory: {path}")

        return abs_path

    @staticmethod
    def sanitize_file_path(path: str, base_dir: str) -> str:
        """
        Resolve a file argument (var file, plan file) relative to base_dir.

        The file itself does not have to exist (plan -out targets don't).
        """
        if not path:
            raise SecurityError("File path cannot be empty")
        if not InputSanitizer.is_safe_command_arg(path):
            raise SecurityError(f"Unsafe file path: {path!r}")
        expanded = os.path.expanduser(path)
        if not os.path.isabs(expanded):
            expanded = os.path.join(base_dir, expanded)
        return os.path.normpath(expanded)

    @staticmethod
    def sanitize_variable_name(name: str) -> str:
        """
        Validate Terraform variable name.

        Rules:
        - Must start with letter or underscore
        - Can contain letters, digits, underscores, hyphens
        - Max length: 255 characters

        Raises:
            SecurityError: If name is invalid
        """
        if not name:
            raise SecurityError("Variable name cannot be empty")

        if len(name) > InputSanitizer.MAX_VARIABLE_NAME_LENGTH:
            raise SecurityError(
                f"Variable name too long (max {InputSanitizer.MAX_VARIABLE_NAME_LENGTH})"
            )

        if not InputSanitizer.VARIABLE_NAME_PATTERN.match(name):
            raise SecurityError(
                f"Invalid variable name '{name}': must start with letter/underscore, "
                "contain only letters, digits, underscores, hyphens"
            )

        return name

    @staticmethod
    def sanitize_backend_key(key: str) -> str:
        """Validate a -backend-config key."""
        if not key or not InputSanitizer.BACKEND_KEY_PATTERN.match(key):
            raise SecurityError(f"Invalid backend config key: {key!r}")
        return key

    @staticmethod
    def sanitize_variable_value(value: Any) -> str:
        """
        Convert a variable value to its -var representation.

        Booleans become true/false, numbers are passed through, lists and
        dicts are JSON encoded (Terraform accepts JSON for complex types),
        and strings are checked for control characters.

        Raises:
            SecurityError: If value is unsafe
        """
        if value is None:
            return ""

        if isinstance(value, bool):
            str_value = "true" if value else "false"
        elif isinstance(value, (int, float)):
            str_value = str(value)
        elif isinstance(value, (list, tuple, dict)):
            try:
                str_value = json.dumps(value)
            except (TypeError, ValueError) as e:
                raise SecurityError(f"Value is not JSON serializable: {e}")
        else:
            str_value = str(value)
            blocked_found = InputSanitizer.BLOCKED_VALUE_CHARS.intersection(str_value)
            if blocked_found:
                raise SecurityError(
                    f"Value contains forbidden characters: {sorted(blocked_found)!r}"
                )

        if len(str_value) > InputSanitizer.MAX_VARIABLE_VALUE_LENGTH:
            raise SecurityError(
                f"Variable value too long (max {InputSanitizer.MAX_VARIABLE_VALUE_LENGTH})"
            )

        return str_value

    @staticmethod
    def sanitize_workspace_name(name: str) -> str:
        """
        Validate Terraform workspace name.

        Rules:
        - Alphanumeric, hyphens, underscores only
        - Max length: 90 characters (Terraform limit)
        - Cannot be empty
        - Cannot start with hyphen

        Raises:
            SecurityError: If name is invalid
        """
        if not name:
            raise SecurityError("Workspace name cannot be empty")

        if len(name) > InputSanitizer.MAX_WORKSPACE_NAME_LENGTH:
            raise SecurityError(
                f"Workspace name too long (max {InputSanitizer.MAX_WORKSPACE_NAME_LENGTH})"
            )

        if name.startswith("-"):
            raise SecurityError("Workspace name cannot start with hyphen")

        if not re.match(r'^[a-zA-Z0-9_-]+$', name):
            raise SecurityError(
                f"Invalid workspace name '{name}': only alphanumeric, hyphens, "
                "underscores allowed"
            )

        return name

    @staticmethod
    def sanitize_resource_address(address: str) -> str:
        """Validate a resource address used with -target or state show."""
        if not address or address.startswith("-"):
            raise SecurityError(f"Invalid resource address: {address!r}")
        if not InputSanitizer.RESOURCE_ADDRESS_PATTERN.match(address):
            raise SecurityError(f"Invalid resource address: {address!r}")
        return address

    @staticmethod
    def sanitize_duration(duration: str) -> str:
        """Validate a Terraform duration string such as "30s" or "5m"."""
        if not duration or not InputSanitizer.DURATION_PATTERN.match(duration):
            raise SecurityError(f"Invalid duration: {duration!r}")
        return duration

    @staticmethod
    def is_safe_command_arg(arg: str) -> bool:
        """
        Check if a command argument is safe to pass to subprocess.

        Arguments are always passed with shell=False; this only rejects
        null bytes and absurdly long values.
        """
        if '\x00' in arg:
            return False

        if len(arg) > InputSanitizer.MAX_ARG_LENGTH:
            return False

        return True
