"""
Classification of failed Terraform attempts as transient or permanent.

Classification is text based: Terraform does not use stable exit codes
per failure class, so the combined stderr/stdout of a failed attempt is
matched against an ordered list of rules. The first matching rule wins;
output that matches nothing is treated as permanent.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple, Union

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    """Why an attempt failed."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ClassificationRule:
    """A single (pattern, kind) rule."""
    pattern: Pattern
    kind: FailureKind

    @classmethod
    def compile(cls, pattern: Union[str, Pattern], kind: FailureKind) -> "ClassificationRule":
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE)
        return cls(pattern=pattern, kind=kind)

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


# Specific permanent signatures come first so that e.g. an invalid
# configuration mentioning a "timeout" attribute is not retried.
PERMANENT_PATTERNS: Tuple[str, ...] = (
    r"invalid configuration",
    r"unsupported (argument|block type|attribute)",
    r"missing required (argument|provider)",
    r"invalid reference",
    r"reference to undeclared",
    r"argument or block definition required",
    r"syntax error",
    r"invalid (expression|value for (input )?variable|character)",
    r"no valid credential sources",
    r"invalid ?client ?token ?id",
    r"signature ?does ?not ?match",
    r"authentication failed",
    r"unauthorized",
    r"access ?denied",
    r"forbidden",
    r"expired ?token",
    r"no configuration files",
    r"module not installed",
    r"backend initialization required",
    r"inconsistent dependency lock file",
)

TRANSIENT_PATTERNS: Tuple[str, ...] = (
    r"time(d)? ?out",
    r"deadline exceeded",
    r"connection (reset|refused|closed)",
    r"broken pipe",
    r"unexpected eof",
    r"no such host",
    r"temporary failure in name resolution",
    r"network is unreachable",
    r"tls handshake",
    r"error acquiring the state lock",
    r"state (is )?locked",
    r"\block(ed|ing)?\b(?!\s+file)",
    r"conditionalcheckfailedexception",
    r"throttl(ed|ing)",
    r"rate ?(limit|exceeded)",
    r"request ?limit ?exceeded",
    r"too many requests",
    r"\b(status ?(code)?|http(/[\d.]+)?|response code)[:=\s]*(429|502|503|504)\b",
    r"\b(429|502|503|504) (too many|bad gateway|service unavailable|gateway time)",
    r"service unavailable",
    r"bad gateway",
    r"try again",
    r"temporarily unavailable",
    r"internal ?server ?error",
)


class ErrorClassifier:
    """
    Ordered, data-driven failure classifier.

    Example:
        >>> classifier = ErrorClassifier()
        >>> classifier.classify_text("Error acquiring the state lock")
        <FailureKind.TRANSIENT: 'transient'>
    """

    def __init__(
        self,
        rules: Optional[Iterable[ClassificationRule]] = None,
        default: FailureKind = FailureKind.PERMANENT,
    ):
        if rules is None:
            rules = self.default_rules()
        self._rules: List[ClassificationRule] = list(rules)
        self.default = default

    @staticmethod
    def default_rules() -> List[ClassificationRule]:
        """Built-in rules: permanent signatures followed by transient ones."""
        rules = [
            ClassificationRule.compile(p, FailureKind.PERMANENT) for p in PERMANENT_PATTERNS
        ]
        rules.extend(
            ClassificationRule.compile(p, FailureKind.TRANSIENT) for p in TRANSIENT_PATTERNS
        )
        return rules

    @classmethod
    def from_config(cls, config) -> "ErrorClassifier":
        """Built-in rules with the configured extra patterns placed first."""
        classifier = cls()
        # Configured permanent patterns take precedence over configured transient ones
        for pattern in reversed(config.transient_patterns):
            classifier.add_rule(pattern, FailureKind.TRANSIENT)
        for pattern in reversed(config.permanent_patterns):
            classifier.add_rule(pattern, FailureKind.PERMANENT)
        return classifier

    @property
    def rules(self) -> List[ClassificationRule]:
        return list(self._rules)

    def add_rule(self, pattern: Union[str, Pattern], kind: FailureKind, first: bool = True):
        """
        Register an additional rule.

        Args:
            pattern: Regex (compiled case-insensitively if a string)
            kind: Classification for matching output
            first: Insert ahead of the existing rules (default) or append
        """
        rule = ClassificationRule.compile(pattern, kind)
        if first:
            self._rules.insert(0, rule)
        else:
            self._rules.append(rule)

    def classify_text(self, text: str) -> FailureKind:
        """Classify free text using the first matching rule."""
        for rule in self._rules:
            if rule.matches(text):
                logger.debug(f"Output matched {rule.kind.value} rule {rule.pattern.pattern!r}")
                return rule.kind
        return self.default

    def classify(self, result) -> FailureKind:
        """
        Classify a failed CommandResult.

        A timed-out attempt is always TIMEOUT; otherwise stderr and stdout
        are matched together.
        """
        if result.timed_out:
            return FailureKind.TIMEOUT
        return self.classify_text(f"{result.stderr}\n{result.stdout}")

    @staticmethod
    def is_retryable(kind: FailureKind) -> bool:
        return kind in (FailureKind.TRANSIENT, FailureKind.TIMEOUT)
