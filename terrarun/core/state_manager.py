"""
Terraform state inspection.

Provides read-only access to Terraform state: listing resources,
showing resource details, and viewing outputs.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..security.sanitizer import InputSanitizer
from .process_executor import CommandInvocation, CommandResult, ProcessExecutor

logger = logging.getLogger(__name__)


@dataclass
class StateResource:
    """A single resource in Terraform state."""
    address: str       # e.g. "aws_instance.web"
    type: str          # e.g. "aws_instance"
    name: str          # e.g. "web"


class StateManager:
    """
    Read-only Terraform state inspection.

    Commands go through the ProcessExecutor with the "state" timeout and
    retry settings, so a held state lock is retried like any other
    transient failure.
    """

    def __init__(self, project_path: str, executor: ProcessExecutor):
        self.project_path = InputSanitizer.sanitize_path(project_path)
        self.executor = executor

    def run(self, args: List[str]) -> CommandResult:
        """Run a read-only terraform subcommand in the project directory."""
        config = self.executor.config
        invocation = CommandInvocation(
            arguments=tuple(args),
            working_directory=self.project_path,
            timeout=config.timeout_for("state"),
            max_retries=config.retries_for("state"),
            operation=" ".join(args[:2]) if args[0] == "state" else args[0],
        )
        return self.executor.execute(invocation)

    @staticmethod
    def _parse_address(address: str) -> Tuple[str, str]:
        """
        Split a resource address into (type, name).

        For simple addresses like "aws_instance.web", returns ("aws_instance", "web").
        For module addresses like "module.foo.aws_instance.web", returns ("aws_instance", "web").
        Index keys stay on the name: 'aws_instance.web["a"]' -> ("aws_instance", 'web["a"]').
        """
        base, bracket, key = address.partition("[")
        parts = base.split(".")
        if len(parts) >= 2:
            return parts[-2], parts[-1] + bracket + key
        return address, ""

    def list_resources(self) -> List[StateResource]:
        """
        List all resources in the current Terraform state.

        Runs `terraform state list` and parses each line as a resource address.
        """
        result = self.run(["state", "list"])
        if not result.success:
            logger.error(f"Failed to list state resources: {result.stderr_tail()}")
            return []

        resources = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            res_type, res_name = self._parse_address(line)
            resources.append(StateResource(address=line, type=res_type, name=res_name))

        return resources

    def get_resource_details(self, address: str) -> str:
        """
        Get detailed attributes for a single resource.

        Runs `terraform state show <address>`.
        """
        InputSanitizer.sanitize_resource_address(address)
        result = self.run(["state", "show", "-no-color", address])
        if not result.success:
            logger.error(f"Failed to show resource {address}: {result.stderr_tail()}")
            return f"Error: {result.stderr_tail()}"

        return result.stdout

    def get_outputs(self) -> str:
        """
        Get all Terraform outputs.

        Runs `terraform output -no-color`.
        """
        result = self.run(["output", "-no-color"])
        if not result.success:
            logger.error(f"Failed to get outputs: {result.stderr_tail()}")
            return f"Error: {result.stderr_tail()}"

        return result.stdout

    def get_outputs_json(self) -> Dict[str, Any]:
        """
        Get all Terraform outputs as a name -> value dict.

        Sensitive outputs are returned as None.
        """
        result = self.run(["output", "-json"])
        if not result.success:
            logger.error(f"Failed to get outputs: {result.stderr_tail()}")
            return {}

        try:
            document = json.loads(result.stdout or "{}")
        except ValueError as e:
            logger.error(f"terraform output -json returned invalid JSON: {e}")
            return {}

        outputs = {}
        for name, entry in document.items():
            if not isinstance(entry, dict):
                continue
            outputs[name] = None if entry.get("sensitive") else entry.get("value")
        return outputs
