"""
Terraform operations: init, plan, apply, destroy and friends.

This module builds validated argument vectors for each Terraform
operation, runs them through the ProcessExecutor, protects state around
apply/destroy with the StateGuard, and attaches a PlanAnalysis where the
output describes resource changes.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..config import RunnerConfig
from ..errors import ConfigurationError, OperationFailedError
from ..security.sanitizer import InputSanitizer
from ..utils import validate_project_is_terraform
from .error_classifier import FailureKind
from .plan_analyzer import PlanAnalysis, PlanAnalyzer
from .process_executor import CommandInvocation, CommandResult, OutputCallback, ProcessExecutor
from .state_guard import RollbackOutcome, StateBackup, StateGuard
from .state_manager import StateManager, StateResource
from .terraform_parser import TerraformParser
from .tfvars_handler import TfvarsHandler
from .workspace_manager import (
    WorkspaceCache,
    WorkspaceManager,
    WorkspaceRecord,
    current_workspace_name,
)

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of one public Terraform operation, retries included."""
    operation: str
    working_directory: str
    success: bool
    exit_code: int
    duration: float
    attempts: int
    stdout: str
    stderr: str
    failure_kind: Optional[FailureKind] = None
    timed_out: bool = False
    plan_analysis: Optional[PlanAnalysis] = None
    backup: Optional[StateBackup] = None
    rollback: Optional[RollbackOutcome] = None
    workspace: Optional[WorkspaceRecord] = None

    @classmethod
    def from_command(
        cls,
        command: CommandResult,
        operation: str,
        working_directory: str,
        duration: float,
    ) -> "OperationResult":
        return cls(
            operation=operation,
            working_directory=working_directory,
            success=command.success,
            exit_code=command.exit_code,
            duration=duration,
            attempts=command.retry_attempt,
            stdout=command.stdout,
            stderr=command.stderr,
            failure_kind=command.failure_kind,
            timed_out=command.timed_out,
        )

    @property
    def rollback_failed(self) -> bool:
        return self.rollback is not None and self.rollback.attempted and not self.rollback.succeeded

    def stderr_tail(self, lines: int = 20) -> str:
        stripped = [line for line in self.stderr.splitlines() if line.strip()]
        return "\n".join(stripped[-lines:])

    def failure_message(self, tail_lines: int = 20) -> str:
        """
        Describe a failure: classification, attempts, stderr tail and,
        when a rollback happened, its outcome.
        """
        if self.success:
            return f"terraform {self.operation} succeeded in {self.duration:.1f}s"

        kind = self.failure_kind.value if self.failure_kind else "unclassified"
        message = (
            f"terraform {self.operation} failed ({kind}) after {self.attempts} "
            f"attempt(s), exit code {self.exit_code}, in {self.working_directory}"
        )
        if self.rollback is not None:
            message += f"; {self.rollback.describe()}"

        tail = self.stderr_tail(tail_lines)
        if tail:
            message += f"\n--- stderr (last {tail_lines} lines) ---\n{tail}"
        return message

    def raise_for_status(self) -> "OperationResult":
        """Raise OperationFailedError if the operation failed, else return self."""
        if not self.success:
            raise OperationFailedError(self)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "operation": self.operation,
            "working_directory": self.working_directory,
            "success": self.success,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "attempts": self.attempts,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "timed_out": self.timed_out,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "plan_analysis": self.plan_analysis.to_dict() if self.plan_analysis else None,
            "backup": None,
            "rollback": None,
            "workspace": None,
        }
        if self.backup:
            data["backup"] = {
                "source_path": self.backup.source_path,
                "backup_path": self.backup.backup_path,
                "timestamp": self.backup.timestamp.isoformat(),
            }
        if self.rollback:
            data["rollback"] = {
                "attempted": self.rollback.attempted,
                "succeeded": self.rollback.succeeded,
                "backup_path": self.rollback.backup_path,
                "error": self.rollback.error,
            }
        if self.workspace:
            data["workspace"] = {
                "name": self.workspace.name,
                "path": self.workspace.path,
                "backend": self.workspace.backend,
                "last_initialized": (
                    self.workspace.last_initialized.isoformat()
                    if self.workspace.last_initialized else None
                ),
                "status": self.workspace.status.value,
            }
        return data


class TerraformRunner:
    """
    Executes Terraform operations against working directories.

    Every public operation validates its inputs, raising
    ConfigurationError/SecurityError before anything is launched, and
    otherwise returns an OperationResult; a failed Terraform run is a
    result with success == False, never an exception.
    """

    def __init__(
        self,
        config: Optional[RunnerConfig] = None,
        executor: Optional[ProcessExecutor] = None,
        guard: Optional[StateGuard] = None,
        analyzer: Optional[PlanAnalyzer] = None,
    ):
        if config is None:
            config = executor.config if executor is not None else RunnerConfig()
        self.config = config
        self.executor = executor or ProcessExecutor(config)
        self.guard = guard or StateGuard(config)
        self.analyzer = analyzer or PlanAnalyzer()
        self.workspaces = WorkspaceCache(config.workspace_stale_after)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def init(
        self,
        working_dir: str,
        backend: bool = True,
        backend_config: Optional[Dict[str, Any]] = None,
        upgrade: bool = False,
        reconfigure: bool = False,
        migrate_state: bool = False,
        lock_timeout: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> OperationResult:
        """Run terraform init and record the workspace."""
        working_dir = self._working_dir(working_dir)
        args = ["init", "-input=false", "-no-color"]

        if not backend:
            args.append("-backend=false")

        for key, value in (backend_config or {}).items():
            InputSanitizer.sanitize_backend_key(key)
            args.append(f"-backend-config={key}={InputSanitizer.sanitize_variable_value(value)}")

        if upgrade:
            args.append("-upgrade")
        if reconfigure:
            args.append("-reconfigure")
        if migrate_state:
            args.append("-migrate-state")
        args.append(f"-lock-timeout={self._lock_timeout(lock_timeout)}")

        result = self._run("init", working_dir, args, (), timeout, max_retries, output_callback)

        backend_type = TerraformParser(working_dir).detect_backend() if backend else "none"
        result.workspace = self.workspaces.record_init(
            working_dir, current_workspace_name(working_dir), backend_type, result.success
        )
        return result

    def validate(
        self,
        working_dir: str,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> OperationResult:
        """Run terraform validate."""
        working_dir = self._working_dir(working_dir)
        return self._run(
            "validate", working_dir, ["validate", "-no-color"], (),
            timeout, max_retries, output_callback,
        )

    def plan(
        self,
        working_dir: str,
        variables: Optional[Dict[str, Any]] = None,
        var_file: Optional[str] = None,
        targets: Optional[Iterable[str]] = None,
        destroy: bool = False,
        out_file: Optional[str] = None,
        sensitive: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> OperationResult:
        """Run terraform plan and analyze its output."""
        working_dir = self._working_dir(working_dir)
        args = ["plan", "-input=false", "-no-color"]

        if out_file:
            args.append(f"-out={InputSanitizer.sanitize_file_path(out_file, working_dir)}")
        if destroy:
            args.append("-destroy")

        secrets = self._add_inputs(args, working_dir, variables, var_file, targets, sensitive)

        result = self._run("plan", working_dir, args, secrets, timeout, max_retries, output_callback)
        result.plan_analysis = self.analyzer.analyze(result.stdout, result.stderr)
        return result

    def apply(
        self,
        working_dir: str,
        plan_file: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        var_file: Optional[str] = None,
        targets: Optional[Iterable[str]] = None,
        auto_approve: bool = False,
        lock: bool = True,
        lock_timeout: Optional[str] = None,
        parallelism: Optional[int] = None,
        refresh: bool = True,
        backup: Optional[bool] = None,
        rollback: Optional[bool] = None,
        backup_path: Optional[str] = None,
        sensitive: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> OperationResult:
        """
        Run terraform apply, either of a saved plan or of the configuration.

        A saved plan already carries its variables and targets, so those
        options cannot be combined with plan_file.
        """
        working_dir = self._working_dir(working_dir)

        if plan_file:
            if variables or var_file or targets:
                raise ConfigurationError(
                    "variables, var_file and targets cannot be combined with a saved plan"
                )
            plan_path = InputSanitizer.sanitize_file_path(plan_file, working_dir)
            if not os.path.isfile(plan_path):
                raise ConfigurationError(f"Plan file does not exist: {plan_file}")
            args = ["apply", "-input=false", "-no-color", plan_path]
            secrets: List[str] = []
        else:
            args = ["apply", "-input=false", "-no-color"]
            if auto_approve:
                args.append("-auto-approve")
            secrets = self._add_inputs(args, working_dir, variables, var_file, targets, sensitive)
            self._add_execution_flags(args, lock, lock_timeout, parallelism, refresh)

        return self._run_guarded(
            "apply", working_dir, args, secrets, backup, rollback, backup_path,
            timeout, max_retries, output_callback,
        )

    def destroy(
        self,
        working_dir: str,
        variables: Optional[Dict[str, Any]] = None,
        var_file: Optional[str] = None,
        targets: Optional[Iterable[str]] = None,
        auto_approve: bool = False,
        lock: bool = True,
        lock_timeout: Optional[str] = None,
        parallelism: Optional[int] = None,
        refresh: bool = True,
        backup: Optional[bool] = None,
        rollback: Optional[bool] = None,
        backup_path: Optional[str] = None,
        sensitive: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> OperationResult:
        """Run terraform destroy with state backup and optional rollback."""
        working_dir = self._working_dir(working_dir)
        args = ["destroy", "-input=false", "-no-color"]
        if auto_approve:
            args.append("-auto-approve")
        secrets = self._add_inputs(args, working_dir, variables, var_file, targets, sensitive)
        self._add_execution_flags(args, lock, lock_timeout, parallelism, refresh)

        return self._run_guarded(
            "destroy", working_dir, args, secrets, backup, rollback, backup_path,
            timeout, max_retries, output_callback,
        )

    def show_plan(
        self,
        working_dir: str,
        plan_file: str,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> OperationResult:
        """Run terraform show -json on a saved plan and analyze it."""
        working_dir = self._working_dir(working_dir)
        plan_path = InputSanitizer.sanitize_file_path(plan_file, working_dir)
        if not os.path.isfile(plan_path):
            raise ConfigurationError(f"Plan file does not exist: {plan_file}")

        result = self._run(
            "show", working_dir, ["show", "-json", "-no-color", plan_path], (),
            timeout, max_retries, None,
        )
        if result.success:
            result.plan_analysis = self.analyzer.analyze_json(result.stdout)
        return result

    def state_list(self, working_dir: str) -> List[StateResource]:
        return self.state_manager(working_dir).list_resources()

    def state_show(self, working_dir: str, address: str) -> str:
        return self.state_manager(working_dir).get_resource_details(address)

    def output(self, working_dir: str, as_json: bool = False):
        manager = self.state_manager(working_dir)
        return manager.get_outputs_json() if as_json else manager.get_outputs()

    def state_manager(self, working_dir: str) -> StateManager:
        return StateManager(working_dir, self.executor)

    def workspace_manager(self, working_dir: str) -> WorkspaceManager:
        return WorkspaceManager(working_dir, self.executor)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _working_dir(working_dir: str) -> str:
        path = InputSanitizer.sanitize_path(working_dir)
        if not validate_project_is_terraform(path):
            logger.warning(f"No Terraform configuration files found in {path}")
        return path

    def _lock_timeout(self, lock_timeout: Optional[str]) -> str:
        return InputSanitizer.sanitize_duration(lock_timeout or self.config.lock_timeout)

    def _add_inputs(
        self,
        args: List[str],
        working_dir: str,
        variables: Optional[Dict[str, Any]],
        var_file: Optional[str],
        targets: Optional[Iterable[str]],
        sensitive: Optional[Iterable[str]],
    ) -> List[str]:
        """
        Append -target, -var-file and -var arguments.

        Returns:
            Values of sensitive variables, to be redacted from output
        """
        for target in targets or ():
            args.append(f"-target={InputSanitizer.sanitize_resource_address(target)}")

        values: Dict[str, Any] = {}
        if var_file:
            var_path = InputSanitizer.sanitize_file_path(var_file, working_dir)
            values.update(TfvarsHandler.load_var_file(var_path))
            args.append(f"-var-file={var_path}")

        for name, value in (variables or {}).items():
            InputSanitizer.sanitize_variable_name(name)
            args.append(f"-var={name}={InputSanitizer.sanitize_variable_value(value)}")
            values[name] = value

        return self._sensitive_values(working_dir, values, sensitive)

    def _add_execution_flags(
        self,
        args: List[str],
        lock: bool,
        lock_timeout: Optional[str],
        parallelism: Optional[int],
        refresh: bool,
    ):
        if not lock:
            args.append("-lock=false")
        else:
            args.append(f"-lock-timeout={self._lock_timeout(lock_timeout)}")

        if parallelism is not None:
            if int(parallelism) < 1:
                raise ConfigurationError(f"parallelism must be >= 1, got {parallelism}")
            args.append(f"-parallelism={int(parallelism)}")

        if not refresh:
            args.append("-refresh=false")

    @staticmethod
    def _sensitive_values(
        working_dir: str,
        values: Dict[str, Any],
        sensitive: Optional[Iterable[str]],
    ) -> List[str]:
        names = set(sensitive or ())
        if values:
            names |= TerraformParser(working_dir).sensitive_variable_names()
        return TfvarsHandler.sensitive_values(values, names)

    def _invocation(
        self,
        operation: str,
        working_dir: str,
        args: List[str],
        secrets: Iterable[str],
        timeout: Optional[float],
        max_retries: Optional[int],
    ) -> CommandInvocation:
        return CommandInvocation(
            arguments=tuple(args),
            working_directory=working_dir,
            timeout=timeout if timeout is not None else self.config.timeout_for(operation),
            max_retries=(
                max_retries if max_retries is not None else self.config.retries_for(operation)
            ),
            operation=operation,
            sensitive_values=tuple(secrets),
        )

    def _run(
        self,
        operation: str,
        working_dir: str,
        args: List[str],
        secrets: Iterable[str],
        timeout: Optional[float],
        max_retries: Optional[int],
        output_callback: Optional[OutputCallback],
    ) -> OperationResult:
        invocation = self._invocation(operation, working_dir, args, secrets, timeout, max_retries)
        start = time.monotonic()
        command = self.executor.execute(invocation, output_callback)
        return OperationResult.from_command(
            command, operation, working_dir, time.monotonic() - start
        )

    def _run_guarded(
        self,
        operation: str,
        working_dir: str,
        args: List[str],
        secrets: Iterable[str],
        backup: Optional[bool],
        rollback: Optional[bool],
        backup_path: Optional[str],
        timeout: Optional[float],
        max_retries: Optional[int],
        output_callback: Optional[OutputCallback],
    ) -> OperationResult:
        """Run a state-mutating operation inside the StateGuard."""
        invocation = self._invocation(operation, working_dir, args, secrets, timeout, max_retries)
        if backup_path:
            backup_path = InputSanitizer.sanitize_file_path(backup_path, working_dir)

        start = time.monotonic()
        guarded = self.guard.protect(
            working_dir,
            lambda: self.executor.execute(invocation, output_callback),
            backup=backup,
            rollback=rollback,
            backup_path=backup_path,
        )

        result = OperationResult.from_command(
            guarded.result, operation, working_dir, time.monotonic() - start
        )
        result.backup = guarded.backup
        result.rollback = guarded.rollback
        result.plan_analysis = self.analyzer.analyze(result.stdout, result.stderr)

        if result.rollback_failed:
            logger.error(result.failure_message(self.config.stderr_tail_lines))
        return result
