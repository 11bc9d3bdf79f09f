"""
Structured interpretation of Terraform plan/apply output.

The analyzer is purely functional: text in, PlanAnalysis out. Missing or
unrecognized content never raises; it produces defaulted counts and,
where useful, a warning.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """Kind of change planned or applied for one resource."""
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    REPLACE = "replace"
    READ = "read"
    NO_OP = "no-op"


@dataclass(frozen=True)
class ResourceChange:
    """One resource address and the change Terraform plans for it."""
    address: str
    kind: ChangeKind


@dataclass
class PlanAnalysis:
    """Summary of a plan, apply or destroy run."""
    resource_changes: List[ResourceChange] = field(default_factory=list)
    to_add: int = 0
    to_change: int = 0
    to_destroy: int = 0
    summary: str = ""
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def counts(self) -> Tuple[int, int, int]:
        """(add, change, destroy)"""
        return self.to_add, self.to_change, self.to_destroy

    @property
    def has_changes(self) -> bool:
        return any(self.counts)

    def changes_of_kind(self, kind: ChangeKind) -> List[ResourceChange]:
        return [change for change in self.resource_changes if change.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_changes": [
                {"address": change.address, "kind": change.kind.value}
                for change in self.resource_changes
            ],
            "to_add": self.to_add,
            "to_change": self.to_change,
            "to_destroy": self.to_destroy,
            "summary": self.summary,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


# Plan: [1 to import, ]3 to add, 1 to change, 0 to destroy.
_PLAN_SUMMARY_RE = re.compile(
    r"Plan:\s*(?:(?P<import>\d+) to import,\s*)?"
    r"(?P<add>\d+) to add,\s*(?P<change>\d+) to change,\s*(?P<destroy>\d+) to destroy"
)

# Apply complete! Resources: 1 added, 0 changed, 0 destroyed.
# Destroy complete! Resources: 2 destroyed.
_APPLY_SUMMARY_RE = re.compile(
    r"(?P<op>Apply|Destroy) complete! Resources:\s*"
    r"(?:(?P<import>\d+) imported,\s*)?"
    r"(?:(?P<add>\d+) added,\s*)?"
    r"(?:(?P<change>\d+) changed,\s*)?"
    r"(?P<destroy>\d+) destroyed"
)

_NO_CHANGES_RE = re.compile(r"^\s*No changes\.", re.MULTILINE)

#   # module.vpc.aws_vpc.main will be created
_COMMENT_CHANGE_RE = re.compile(
    r"^\s*#\s+(?P<address>.+?)\s+(?P<verb>will be created|will be updated in-place|"
    r"will be destroyed|will be read during apply|must be replaced|will be replaced|"
    r"has moved to)\b"
)

# aws_instance.web: Creating...
_PROGRESS_RE = re.compile(
    r"^(?P<address>\S+): (?P<verb>Creating|Modifying|Destroying|Reading)\.\.\."
)

#   + resource "aws_instance" "web" {
_GLYPH_RE = re.compile(
    r'^\s*(?P<glyph>-/\+|\+/-|<=|\+|-|~)\s+(?P<block>resource|data)\s+'
    r'"(?P<type>[^"]+)"\s+"(?P<name>[^"]+)"'
)

# Box drawing Terraform uses around diagnostics
_DIAGNOSTIC_PREFIX_RE = re.compile(r"^[\s│╷╵|]*")

_VERB_KINDS = {
    "will be created": ChangeKind.CREATE,
    "will be updated in-place": ChangeKind.UPDATE,
    "will be destroyed": ChangeKind.DESTROY,
    "will be read during apply": ChangeKind.READ,
    "must be replaced": ChangeKind.REPLACE,
    "will be replaced": ChangeKind.REPLACE,
    "has moved to": ChangeKind.NO_OP,
    "Creating": ChangeKind.CREATE,
    "Modifying": ChangeKind.UPDATE,
    "Destroying": ChangeKind.DESTROY,
    "Reading": ChangeKind.READ,
}

_GLYPH_KINDS = {
    "+": ChangeKind.CREATE,
    "-": ChangeKind.DESTROY,
    "~": ChangeKind.UPDATE,
    "-/+": ChangeKind.REPLACE,
    "+/-": ChangeKind.REPLACE,
    "<=": ChangeKind.READ,
}

_JSON_ACTION_KINDS = {
    ("create",): ChangeKind.CREATE,
    ("update",): ChangeKind.UPDATE,
    ("delete",): ChangeKind.DESTROY,
    ("delete", "create"): ChangeKind.REPLACE,
    ("create", "delete"): ChangeKind.REPLACE,
    ("read",): ChangeKind.READ,
    ("no-op",): ChangeKind.NO_OP,
}

NO_SUMMARY_WARNING = "No plan summary line found in output; change counts default to zero"


class PlanAnalyzer:
    """Parses Terraform output into a PlanAnalysis."""

    def analyze(self, output: str, diagnostics: str = "") -> PlanAnalysis:
        """
        Analyze human-readable plan/apply/destroy output.

        Args:
            output: Captured stdout
            diagnostics: Captured stderr; only scanned for warnings and errors

        Returns:
            PlanAnalysis (never raises)
        """
        analysis = PlanAnalysis()
        output = output or ""

        self._parse_summary(output, analysis)

        changes: Dict[str, ChangeKind] = {}
        glyph_changes: Dict[str, ChangeKind] = {}

        for text in (output, diagnostics or ""):
            for raw_line in text.splitlines():
                self._collect_diagnostic(raw_line, analysis)

        for line in output.splitlines():
            match = _COMMENT_CHANGE_RE.match(line) or _PROGRESS_RE.match(line)
            if match:
                self._merge(changes, match.group("address"), _VERB_KINDS[match.group("verb")])
                continue

            match = _GLYPH_RE.match(line)
            if match:
                address = f"{match.group('type')}.{match.group('name')}"
                if match.group("block") == "data":
                    address = f"data.{address}"
                glyph_changes.setdefault(address, _GLYPH_KINDS[match.group("glyph")])

        # Glyph headers repeat the "# address" lines without module paths,
        # so they are only used when no annotated lines were found.
        source = changes or glyph_changes
        analysis.resource_changes = [
            ResourceChange(address=address, kind=kind) for address, kind in source.items()
        ]

        logger.debug(
            f"Analyzed output: {analysis.summary!r}, {len(analysis.resource_changes)} "
            f"resource changes, {len(analysis.warnings)} warnings, {len(analysis.errors)} errors"
        )
        return analysis

    def analyze_json(self, document: str) -> PlanAnalysis:
        """
        Analyze the output of `terraform show -json <planfile>`.

        Invalid JSON yields an empty analysis with an error entry.
        """
        analysis = PlanAnalysis()

        try:
            plan = json.loads(document)
        except (TypeError, ValueError) as e:
            analysis.errors.append(f"Error: invalid plan JSON: {e}")
            analysis.summary = "Plan could not be parsed"
            return analysis

        if not isinstance(plan, dict):
            analysis.errors.append("Error: plan JSON is not an object")
            analysis.summary = "Plan could not be parsed"
            return analysis

        for entry in plan.get("resource_changes") or []:
            address = entry.get("address")
            actions = tuple((entry.get("change") or {}).get("actions") or ())
            kind = _JSON_ACTION_KINDS.get(actions)
            if not address or kind is None:
                continue

            analysis.resource_changes.append(ResourceChange(address=address, kind=kind))
            if kind in (ChangeKind.CREATE, ChangeKind.REPLACE):
                analysis.to_add += 1
            if kind in (ChangeKind.DESTROY, ChangeKind.REPLACE):
                analysis.to_destroy += 1
            if kind == ChangeKind.UPDATE:
                analysis.to_change += 1

        if plan.get("errored"):
            analysis.errors.append("Error: plan did not complete successfully")

        analysis.summary = (
            f"Plan: {analysis.to_add} to add, {analysis.to_change} to change, "
            f"{analysis.to_destroy} to destroy."
        )
        return analysis

    @staticmethod
    def _parse_summary(output: str, analysis: PlanAnalysis):
        match = _PLAN_SUMMARY_RE.search(output)
        if match:
            analysis.to_add = int(match.group("add"))
            analysis.to_change = int(match.group("change"))
            analysis.to_destroy = int(match.group("destroy"))
            analysis.summary = match.group(0) + "."
            return

        match = _APPLY_SUMMARY_RE.search(output)
        if match:
            analysis.to_add = int(match.group("add") or 0)
            analysis.to_change = int(match.group("change") or 0)
            analysis.to_destroy = int(match.group("destroy"))
            analysis.summary = match.group(0) + "."
            return

        if _NO_CHANGES_RE.search(output):
            analysis.summary = "No changes."
            return

        analysis.summary = "No plan summary found"
        analysis.warnings.append(NO_SUMMARY_WARNING)

    @staticmethod
    def _collect_diagnostic(raw_line: str, analysis: PlanAnalysis):
        line = _DIAGNOSTIC_PREFIX_RE.sub("", raw_line).rstrip()
        if line.startswith("Warning:"):
            analysis.warnings.append(line)
        elif line.startswith("Error:"):
            analysis.errors.append(line)

    @staticmethod
    def _merge(changes: Dict[str, ChangeKind], address: str, kind: ChangeKind):
        """Record a change; a destroy and a create of one address is a replace."""
        existing: Optional[ChangeKind] = changes.get(address)
        if existing is None:
            changes[address] = kind
        elif {existing, kind} == {ChangeKind.CREATE, ChangeKind.DESTROY}:
            changes[address] = ChangeKind.REPLACE
