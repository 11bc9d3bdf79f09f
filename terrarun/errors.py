"""
Exception types for terrarun.

Subprocess failures are never raised; they are reported through
CommandResult / OperationResult. Exceptions are reserved for problems
that prevent a command from being launched at all.
"""


class TerrarunError(Exception):
    """Base class for all terrarun errors."""
    pass


class ConfigurationError(TerrarunError):
    """Raised when a command cannot be started (missing binary, bad path, bad input)."""
    pass


class OperationFailedError(TerrarunError):
    """Raised by OperationResult.raise_for_status() for a failed operation."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.failure_message())
