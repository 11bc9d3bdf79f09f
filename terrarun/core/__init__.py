"""
Core Terraform orchestration for terrarun.

This module provides the business logic for interacting with Terraform:
- Executing commands with timeouts and classified retries
- Protecting state around apply/destroy
- Analyzing plan and apply output
- Inspecting state and workspaces
"""

from .error_classifier import ClassificationRule, ErrorClassifier, FailureKind
from .process_executor import CommandInvocation, CommandResult, ProcessExecutor
from .state_guard import GuardedResult, RollbackOutcome, StateBackup, StateGuard
from .plan_analyzer import ChangeKind, PlanAnalysis, PlanAnalyzer, ResourceChange
from .terraform_parser import TerraformParser, TerraformVariable
from .tfvars_handler import TfvarsHandler
from .workspace_manager import (
    WorkspaceCache,
    WorkspaceInfo,
    WorkspaceManager,
    WorkspaceRecord,
    WorkspaceStatus,
)
from .state_manager import StateManager, StateResource
from .terraform_runner import OperationResult, TerraformRunner

__all__ = [
    "ClassificationRule",
    "ErrorClassifier",
    "FailureKind",
    "CommandInvocation",
    "CommandResult",
    "ProcessExecutor",
    "GuardedResult",
    "RollbackOutcome",
    "StateBackup",
    "StateGuard",
    "ChangeKind",
    "PlanAnalysis",
    "PlanAnalyzer",
    "ResourceChange",
    "TerraformParser",
    "TerraformVariable",
    "TfvarsHandler",
    "WorkspaceCache",
    "WorkspaceInfo",
    "WorkspaceManager",
    "WorkspaceRecord",
    "WorkspaceStatus",
    "StateManager",
    "StateResource",
    "OperationResult",
    "TerraformRunner",
]
