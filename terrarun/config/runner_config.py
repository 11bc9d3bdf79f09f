"""
Immutable runtime configuration passed to the executor, guard and runner.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .defaults import DEFAULT_SETTINGS


def _default(section: str) -> Dict:
    return dict(DEFAULT_SETTINGS[section])


@dataclass(frozen=True)
class RunnerConfig:
    """
    Configuration for one TerraformRunner and its collaborators.

    Attributes:
        terraform_binary: Executable name or path, resolved on PATH at startup
        timeouts: Per-operation timeout in seconds for a single attempt
        retries: Per-operation number of retries after the first attempt
        backoff_base: Seconds added per retry to the back-off delay
        backoff_max: Upper bound for the back-off delay
        lock_timeout: Default -lock-timeout duration
        state_file_name: Name of the local state file in a working directory
        backup_enabled: Back up state before apply/destroy by default
        rollback_on_failure: Restore the backup on failure by default
        transient_patterns: Extra regexes classifying output as transient
        permanent_patterns: Extra regexes classifying output as permanent
        environment: Extra environment variables for every process
        workspace_stale_after: Age in seconds after which a record is stale
        stderr_tail_lines: Lines of stderr quoted in failure messages
    """
    terraform_binary: str = "terraform"
    timeouts: Dict[str, float] = field(default_factory=lambda: _default("timeouts"))
    retries: Dict[str, int] = field(default_factory=lambda: _default("retries"))
    backoff_base: float = 5.0
    backoff_max: float = 30.0
    lock_timeout: str = "0s"
    state_file_name: str = "terraform.tfstate"
    backup_enabled: bool = True
    rollback_on_failure: bool = False
    transient_patterns: Tuple[str, ...] = ()
    permanent_patterns: Tuple[str, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)
    workspace_stale_after: float = 86400.0
    stderr_tail_lines: int = 20

    DEFAULT_TIMEOUT = 600.0
    DEFAULT_RETRIES = 0

    def timeout_for(self, operation: str) -> float:
        """Timeout in seconds for one attempt of the given operation."""
        return float(self.timeouts.get(operation, self.DEFAULT_TIMEOUT))

    def retries_for(self, operation: str) -> int:
        """Number of retries allowed for the given operation."""
        return int(self.retries.get(operation, self.DEFAULT_RETRIES))

    @classmethod
    def from_settings(cls, settings) -> "RunnerConfig":
        """Build a RunnerConfig from a Settings instance."""
        return cls(
            terraform_binary=settings.get("terraform_binary", "terraform"),
            timeouts=dict(settings.get("timeouts", {})),
            retries=dict(settings.get("retries", {})),
            backoff_base=float(settings.get("backoff.base_seconds", 5)),
            backoff_max=float(settings.get("backoff.max_seconds", 30)),
            lock_timeout=settings.get("lock_timeout", "0s"),
            state_file_name=settings.get("state.file_name", "terraform.tfstate"),
            backup_enabled=bool(settings.get("state.backup_enabled", True)),
            rollback_on_failure=bool(settings.get("state.rollback_on_failure", False)),
            transient_patterns=tuple(settings.get("classification.transient_patterns", [])),
            permanent_patterns=tuple(settings.get("classification.permanent_patterns", [])),
            environment={
                str(k): str(v) for k, v in settings.get("environment", {}).items()
            },
            workspace_stale_after=float(settings.get("workspace_stale_after_seconds", 86400)),
            stderr_tail_lines=int(settings.get("stderr_tail_lines", 20)),
        )
