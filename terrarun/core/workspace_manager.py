"""
Terraform workspace management.

Provides an in-memory record of initialized workspaces plus workspace
listing, switching, creation, and deletion by wrapping the
terraform workspace CLI commands.
"""

import logging
import os
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..security.sanitizer import InputSanitizer
from .process_executor import CommandInvocation, CommandResult, ProcessExecutor

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE = "default"


class WorkspaceStatus(Enum):
    ACTIVE = "active"
    STALE = "stale"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class WorkspaceRecord:
    """Last-known status of a workspace in one working directory."""
    name: str
    path: str
    backend: str
    last_initialized: Optional[datetime]
    status: WorkspaceStatus


@dataclass
class WorkspaceInfo:
    """Information about a single Terraform workspace."""
    name: str
    is_current: bool


def current_workspace_name(project_path: str) -> str:
    """
    Name of the selected workspace without running Terraform.

    TF_WORKSPACE overrides the selection stored in .terraform/environment.
    """
    override = os.environ.get("TF_WORKSPACE")
    if override:
        return override

    env_file = os.path.join(project_path, ".terraform", "environment")
    try:
        with open(env_file, "r", encoding="utf-8") as f:
            name = f.read().strip()
    except OSError:
        return DEFAULT_WORKSPACE
    return name or DEFAULT_WORKSPACE


class WorkspaceCache:
    """
    Process-lifetime bookkeeping of initialized workspaces.

    Advisory only: the source of truth is always Terraform itself.
    Only init writes records; the last initialization wins.
    """

    def __init__(self, stale_after: float = 86400.0):
        self.stale_after = timedelta(seconds=stale_after)
        self._records: Dict[Tuple[str, str], WorkspaceRecord] = {}
        self._lock = threading.Lock()

    def record_init(self, path: str, name: str, backend: str, success: bool) -> WorkspaceRecord:
        """Store the outcome of an init for (path, name)."""
        key = (os.path.abspath(path), name)
        with self._lock:
            previous = self._records.get(key)
            if success:
                record = WorkspaceRecord(
                    name=name,
                    path=key[0],
                    backend=backend,
                    last_initialized=datetime.now(),
                    status=WorkspaceStatus.ACTIVE,
                )
            elif previous is not None:
                record = replace(previous, backend=backend, status=WorkspaceStatus.STALE)
            else:
                record = WorkspaceRecord(
                    name=name,
                    path=key[0],
                    backend=backend,
                    last_initialized=None,
                    status=WorkspaceStatus.UNKNOWN,
                )
            self._records[key] = record

        logger.debug(f"Workspace {name} at {key[0]} is {record.status.value}")
        return record

    def get(self, path: str, name: str = DEFAULT_WORKSPACE) -> Optional[WorkspaceRecord]:
        with self._lock:
            record = self._records.get((os.path.abspath(path), name))
        return self._with_age(record) if record else None

    def all(self) -> List[WorkspaceRecord]:
        with self._lock:
            records = list(self._records.values())
        return [self._with_age(record) for record in records]

    def clear(self):
        with self._lock:
            self._records.clear()

    def _with_age(self, record: WorkspaceRecord) -> WorkspaceRecord:
        if (
            record.status == WorkspaceStatus.ACTIVE
            and record.last_initialized is not None
            and datetime.now() - record.last_initialized > self.stale_after
        ):
            return replace(record, status=WorkspaceStatus.STALE)
        return record


class WorkspaceManager:
    """
    Manage Terraform workspaces for a project.

    Commands go through the ProcessExecutor with the "workspace" timeout
    and retry settings.
    """

    def __init__(self, project_path: str, executor: ProcessExecutor):
        self.project_path = InputSanitizer.sanitize_path(project_path)
        self.executor = executor

    def _run(self, args: List[str]) -> CommandResult:
        config = self.executor.config
        invocation = CommandInvocation(
            arguments=tuple(["workspace"] + args),
            working_directory=self.project_path,
            timeout=config.timeout_for("workspace"),
            max_retries=config.retries_for("workspace"),
            operation=f"workspace {args[0]}",
        )
        return self.executor.execute(invocation)

    def get_current_workspace(self) -> str:
        """Return the name of the current workspace."""
        result = self._run(["show"])
        if result.success and result.stdout.strip():
            return result.stdout.strip()
        logger.error(f"Failed to get current workspace: {result.stderr_tail()}")
        return DEFAULT_WORKSPACE

    def list_workspaces(self) -> List[WorkspaceInfo]:
        """
        List all workspaces for this project.

        Returns:
            List of WorkspaceInfo, with is_current set on the active one.
        """
        result = self._run(["list"])
        if not result.success:
            logger.error(f"Failed to list workspaces: {result.stderr_tail()}")
            return [WorkspaceInfo(name=DEFAULT_WORKSPACE, is_current=True)]

        workspaces = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith("* "):
                workspaces.append(WorkspaceInfo(name=line[2:].strip(), is_current=True))
            else:
                workspaces.append(WorkspaceInfo(name=line, is_current=False))

        return workspaces or [WorkspaceInfo(name=DEFAULT_WORKSPACE, is_current=True)]

    def switch_workspace(self, name: str) -> bool:
        """Switch to an existing workspace. Returns True on success."""
        InputSanitizer.sanitize_workspace_name(name)
        result = self._run(["select", name])
        if result.success:
            logger.info(f"Switched to workspace: {name}")
            return True
        logger.error(f"Failed to switch workspace: {result.stderr_tail()}")
        return False

    def create_workspace(self, name: str) -> bool:
        """Create a new workspace and switch to it. Returns True on success."""
        InputSanitizer.sanitize_workspace_name(name)
        result = self._run(["new", name])
        if result.success:
            logger.info(f"Created workspace: {name}")
            return True
        logger.error(f"Failed to create workspace: {result.stderr_tail()}")
        return False

    def delete_workspace(self, name: str, force: bool = False) -> bool:
        """
        Delete a workspace.

        Terraform refuses to delete the currently selected workspace.

        Args:
            name: Workspace name (validated)
            force: Force deletion even if workspace has resources
        """
        InputSanitizer.sanitize_workspace_name(name)
        args = ["delete"]
        if force:
            args.append("-force")
        args.append(name)
        result = self._run(args)
        if result.success:
            logger.info(f"Deleted workspace: {name}")
            return True
        logger.error(f"Failed to delete workspace: {result.stderr_tail()}")
        return False
