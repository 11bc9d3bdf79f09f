"""
State file protection around mutating Terraform operations.

Before apply/destroy the local state file is copied verbatim to a
timestamped backup next to it. If the operation fails and rollback was
requested, the backup is copied back over the live state. Backups are
kept after successful operations for auditing.
"""

import glob
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..config import RunnerConfig
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup-"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"


@dataclass(frozen=True)
class StateBackup:
    """A snapshot of the state file taken before a mutating operation."""
    source_path: str
    backup_path: str
    timestamp: datetime


@dataclass(frozen=True)
class RollbackOutcome:
    """Result of trying to restore a backup after a failed operation."""
    attempted: bool
    succeeded: bool
    backup_path: Optional[str] = None
    error: Optional[str] = None

    def describe(self) -> str:
        if not self.attempted:
            return "state rollback not attempted"
        if self.succeeded:
            return f"state restored from {self.backup_path}"
        return f"state rollback FAILED ({self.backup_path}): {self.error}"


@dataclass
class GuardedResult:
    """What StateGuard.protect() observed around one operation."""
    result: object
    backup: Optional[StateBackup] = None
    rollback: Optional[RollbackOutcome] = None


class StateGuard:
    """
    Backup-before / restore-on-failure for the local state file.

    There is no locking here: callers must not run two mutating
    operations against the same working directory at once.
    """

    def __init__(self, config: Optional[RunnerConfig] = None):
        self.config = config or RunnerConfig()

    def state_path(self, working_dir: str) -> str:
        return os.path.join(working_dir, self.config.state_file_name)

    def default_backup_path(self, working_dir: str, timestamp: datetime) -> str:
        name = f"{self.config.state_file_name}{BACKUP_SUFFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}"
        return os.path.join(working_dir, name)

    def create_backup(
        self,
        working_dir: str,
        backup_path: Optional[str] = None,
    ) -> Optional[StateBackup]:
        """
        Copy the current state file to a backup location.

        Args:
            working_dir: Directory containing the state file
            backup_path: Explicit destination (timestamped sibling if None)

        Returns:
            The backup, or None when there is no state file yet

        Raises:
            ConfigurationError: If the copy fails; the operation must not proceed
        """
        source = self.state_path(working_dir)
        if not os.path.isfile(source):
            logger.info(f"No state file at {source}, skipping backup")
            return None

        timestamp = datetime.now()
        destination = backup_path or self.default_backup_path(working_dir, timestamp)

        try:
            os.makedirs(os.path.dirname(os.path.abspath(destination)), exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as e:
            raise ConfigurationError(f"Could not back up {source} to {destination}: {e}") from e

        logger.info(f"Backed up {source} to {destination}")

        return StateBackup(source_path=source, backup_path=destination, timestamp=timestamp)

    def restore(self, backup: StateBackup) -> RollbackOutcome:
        """
        Copy a backup back over the live state file.

        A failed restore is reported in the outcome, never raised, so the
        original operation failure is not masked.
        """
        try:
            shutil.copy2(backup.backup_path, backup.source_path)
        except OSError as e:
            logger.error(f"Failed to restore state from {backup.backup_path}: {e}")
            return RollbackOutcome(
                attempted=True,
                succeeded=False,
                backup_path=backup.backup_path,
                error=str(e),
            )

        logger.warning(f"Restored {backup.source_path} from {backup.backup_path}")
        return RollbackOutcome(attempted=True, succeeded=True, backup_path=backup.backup_path)

    def protect(
        self,
        working_dir: str,
        run: Callable[[], object],
        backup: Optional[bool] = None,
        rollback: Optional[bool] = None,
        backup_path: Optional[str] = None,
    ) -> GuardedResult:
        """
        Run a mutating operation with state backup and optional rollback.

        Args:
            working_dir: Directory containing the state file
            run: Callable launching the operation; must return an object
                with a boolean `success` attribute
            backup: Take a backup first (config default if None)
            rollback: Restore the backup if the operation fails (config default if None)
            backup_path: Explicit backup destination

        Returns:
            GuardedResult with the operation result, backup and rollback outcome
        """
        if backup is None:
            backup = self.config.backup_enabled
        if rollback is None:
            rollback = self.config.rollback_on_failure

        snapshot = self.create_backup(working_dir, backup_path) if backup else None

        result = run()

        outcome = None
        if not result.success and rollback:
            if snapshot is not None:
                outcome = self.restore(snapshot)
            else:
                logger.warning("Rollback requested but no backup was taken")
                outcome = RollbackOutcome(attempted=False, succeeded=False)

        return GuardedResult(result=result, backup=snapshot, rollback=outcome)

    def list_backups(self, working_dir: str) -> List[str]:
        """Return backup files in working_dir, newest first."""
        pattern = os.path.join(
            glob.escape(working_dir), f"{self.config.state_file_name}{BACKUP_SUFFIX}*"
        )
        return sorted(glob.glob(pattern), reverse=True)

    def prune_backups(self, working_dir: str, keep: int) -> List[str]:
        """
        Delete all but the newest `keep` backups.

        Returns:
            Paths that were removed
        """
        if keep < 0:
            raise ValueError("keep must be >= 0")

        removed = []
        for path in self.list_backups(working_dir)[keep:]:
            try:
                os.remove(path)
                removed.append(path)
            except OSError as e:
                logger.error(f"Failed to remove old backup {path}: {e}")
        return removed
