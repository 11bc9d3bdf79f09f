"""
Terraform process execution with timeouts, output streaming and retries.

This module runs the Terraform binary as a child process:
- stdout and stderr are drained concurrently by two reader threads, so a
  full pipe buffer on one stream can never block the other
- every attempt is bounded by a wall-clock timeout, after which the whole
  process group is killed
- failed attempts are classified and transient ones retried with a
  linear, capped back-off

A failed subprocess is never raised as an exception; it is returned as a
CommandResult with success == False.
"""

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Callable, Dict, List, Optional, Tuple

from ..config import RunnerConfig
from ..errors import ConfigurationError
from ..security.redactor import OutputRedactor
from ..security.sanitizer import InputSanitizer, SecurityError
from ..utils import (
    kill_process_group,
    kill_process_tree,
    process_group_kwargs,
    resolve_terraform_binary,
)
from .error_classifier import ErrorClassifier, FailureKind

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = -1

# Seconds to wait for reader threads once the process has exited or been killed
READER_JOIN_TIMEOUT = 10.0

OutputCallback = Callable[[str], None]


@dataclass(frozen=True)
class CommandInvocation:
    """
    One request to run Terraform.

    Attributes:
        arguments: CLI argument vector, tool name excluded
        working_directory: Process working directory
        timeout: Seconds allowed for a single attempt
        max_retries: Additional attempts allowed after the first
        operation: Label used in logs and messages (e.g. "plan")
        sensitive_values: Strings redacted from all captured output
    """
    arguments: Tuple[str, ...]
    working_directory: str
    timeout: float
    max_retries: int = 0
    operation: str = ""
    sensitive_values: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "sensitive_values", tuple(self.sensitive_values))
        if not self.operation:
            object.__setattr__(
                self, "operation", self.arguments[0] if self.arguments else "terraform"
            )

        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        for arg in self.arguments:
            if not isinstance(arg, str) or not InputSanitizer.is_safe_command_arg(arg):
                raise SecurityError(f"Unsafe command argument: {arg!r}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class CommandResult:
    """Outcome of one Terraform attempt."""
    exit_code: int
    stdout: str
    stderr: str
    execution_time: float = 0.0
    retry_attempt: int = 1
    timed_out: bool = False
    failure_kind: Optional[FailureKind] = None
    operation: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def stderr_tail(self, lines: int = 20) -> str:
        """Return the last non-empty lines of stderr."""
        stripped = [line for line in self.stderr.splitlines() if line.strip()]
        return "\n".join(stripped[-lines:])

    def failure_message(self, tail_lines: int = 20) -> str:
        """
        Human-readable description of a failed result.

        Includes the classification, the number of attempts made and the
        tail of stderr.
        """
        if self.success:
            return f"terraform {self.operation} succeeded"

        kind = self.failure_kind.value if self.failure_kind else "unclassified"
        message = (
            f"terraform {self.operation} failed ({kind}) after "
            f"{self.retry_attempt} attempt(s), exit code {self.exit_code}"
        )
        tail = self.stderr_tail(tail_lines)
        if tail:
            message += f"\n--- stderr (last {tail_lines} lines) ---\n{tail}"
        return message


class ProcessExecutor:
    """
    Runs Terraform invocations with timeouts and classified retries.

    The binary is resolved once at construction; a missing binary is a
    ConfigurationError. Instances hold no per-call state and may be shared
    by several runners, although mutating operations against the same
    working directory must not be issued concurrently.
    """

    def __init__(
        self,
        config: Optional[RunnerConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or RunnerConfig()
        self.binary = resolve_terraform_binary(self.config.terraform_binary)
        self.classifier = classifier or ErrorClassifier.from_config(self.config)
        self._sleep = sleep
        logger.debug(f"Using terraform binary: {self.binary}")

    def backoff_delay(self, retry_number: int) -> float:
        """
        Delay before the given retry.

        retry_number counts retries, not attempts: 1 is the sleep before
        the second attempt. With the defaults this gives 5, 10, 15, ...
        seconds, capped at 30.
        """
        return min(self.config.backoff_max, retry_number * self.config.backoff_base)

    def execute(
        self,
        invocation: CommandInvocation,
        output_callback: Optional[OutputCallback] = None,
    ) -> CommandResult:
        """
        Run an invocation, retrying transient failures.

        Args:
            invocation: What to run
            output_callback: Called with each (redacted) output line

        Returns:
            The successful result, the first permanently failing result,
            or the last result once attempts are exhausted

        Raises:
            ConfigurationError: If the working directory is missing or the
                process cannot be launched at all
        """
        if not os.path.isdir(invocation.working_directory):
            raise ConfigurationError(
                f"Working directory does not exist: {invocation.working_directory}"
            )

        redactor = OutputRedactor(invocation.sensitive_values)

        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                delay = self.backoff_delay(attempt - 1)
                logger.info(
                    f"Retrying terraform {invocation.operation} in {delay:g}s "
                    f"(attempt {attempt}/{invocation.max_attempts})"
                )
                self._sleep(delay)

            result = self._run_once(invocation, attempt, redactor, output_callback)

            if result.success:
                logger.info(
                    f"terraform {invocation.operation} succeeded on attempt {attempt} "
                    f"in {result.execution_time:.1f}s"
                )
                return result

            result.failure_kind = self.classifier.classify(result)
            logger.warning(
                f"terraform {invocation.operation} attempt {attempt}/{invocation.max_attempts} "
                f"failed with exit code {result.exit_code} ({result.failure_kind.value})"
            )

            retryable = self.classifier.is_retryable(result.failure_kind)
            if not retryable or attempt >= invocation.max_attempts:
                logger.error(result.failure_message(self.config.stderr_tail_lines))
                return result

    def build_environment(self) -> Dict[str, str]:
        """
        Environment for a Terraform process.

        Inherits the caller's environment (so TF_LOG and TF_LOG_PATH reach
        the tool) minus TF_CLI_ARGS*, which would alter the argument vector.
        """
        env = {
            key: value for key, value in os.environ.items()
            if not key.startswith("TF_CLI_ARGS")
        }
        env["TF_IN_AUTOMATION"] = "1"
        env["TF_INPUT"] = "0"
        env.update(self.config.environment)
        if env.get("TF_LOG"):
            logger.debug(f"Propagating TF_LOG={env['TF_LOG']}")
        return env

    def _run_once(
        self,
        invocation: CommandInvocation,
        attempt: int,
        redactor: OutputRedactor,
        output_callback: Optional[OutputCallback],
    ) -> CommandResult:
        """Launch one attempt and wait for it to exit or time out."""
        cmd = [self.binary, *invocation.arguments]
        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        callback_lock = threading.Lock()

        logger.debug(f"Running {' '.join(redactor.redact(arg) for arg in cmd)}")
        start = time.monotonic()

        try:
            process = subprocess.Popen(
                cmd,
                cwd=invocation.working_directory,
                env=self.build_environment(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                shell=False,
                **process_group_kwargs(),
            )
        except OSError as e:
            raise ConfigurationError(f"Failed to launch {self.binary}: {e}") from e

        abandoned = threading.Event()
        readers = [
            threading.Thread(
                target=self._drain,
                args=(stream, lines, redactor, output_callback, callback_lock, abandoned),
                name=f"terraform-{invocation.operation}-{name}",
                daemon=True,
            )
            for name, stream, lines in (
                ("stdout", process.stdout, stdout_lines),
                ("stderr", process.stderr, stderr_lines),
            )
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            exit_code = process.wait(timeout=invocation.timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            logger.warning(
                f"terraform {invocation.operation} exceeded {invocation.timeout:g}s, "
                f"killing process group {process.pid}"
            )
            kill_process_tree(process)
            process.wait()
            exit_code = TIMEOUT_EXIT_CODE

        for reader in readers:
            reader.join(timeout=READER_JOIN_TIMEOUT)

        stragglers = [reader for reader in readers if reader.is_alive()]
        if stragglers:
            # Something else in the group still holds the pipes open
            abandoned.set()
            logger.warning(
                f"terraform {invocation.operation} exited but its output pipes are still open, "
                f"killing leftover processes in group {process.pid}"
            )
            kill_process_group(process)
            for reader in stragglers:
                reader.join(timeout=READER_JOIN_TIMEOUT)
                if reader.is_alive():
                    logger.warning(f"Output reader {reader.name} did not finish; output may be truncated")

        elapsed = time.monotonic() - start

        stderr_text = "\n".join(list(stderr_lines))
        if timed_out:
            notice = f"Command timed out after {invocation.timeout:g}s and was killed"
            stderr_text = f"{stderr_text}\n{notice}" if stderr_text else notice

        return CommandResult(
            exit_code=exit_code,
            stdout="\n".join(list(stdout_lines)),
            stderr=stderr_text,
            execution_time=elapsed,
            retry_attempt=attempt,
            timed_out=timed_out,
            operation=invocation.operation,
        )

    @staticmethod
    def _drain(
        stream: IO[str],
        lines: List[str],
        redactor: OutputRedactor,
        output_callback: Optional[OutputCallback],
        callback_lock: threading.Lock,
        abandoned: threading.Event,
    ):
        """Read a stream to EOF, storing redacted lines until abandoned."""
        try:
            for line in stream:
                if abandoned.is_set():
                    break
                redacted = redactor.redact(line.rstrip("\r\n"))
                lines.append(redacted)
                if output_callback is None:
                    continue
                with callback_lock:
                    try:
                        output_callback(redacted)
                    except Exception:
                        # Keep draining; a stalled reader would block the child
                        logger.exception("Output callback raised")
        except (OSError, ValueError) as e:
            logger.debug(f"Stream closed while reading: {e}")
        finally:
            stream.close()
