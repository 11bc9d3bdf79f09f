"""Tests for ErrorClassifier."""

import re

import pytest

from terrarun.config import RunnerConfig
from terrarun.core.error_classifier import ClassificationRule, ErrorClassifier, FailureKind
from terrarun.core.process_executor import CommandResult


@pytest.fixture
def classifier():
    return ErrorClassifier()


@pytest.mark.parametrize("text", [
    "Error: Error acquiring the state lock",
    "Error: timeout while waiting for state to become 'available'",
    "dial tcp: lookup registry.terraform.io: no such host",
    "read: connection reset by peer",
    "Error: ThrottlingException: Rate exceeded",
    "Error: 503 Service Unavailable",
    "operation error EC2: RunInstances, StatusCode: 429, RequestID: abc",
    "unexpected response: HTTP/1.1 502 Bad Gateway",
    "net/http: TLS handshake timeout",
    "Error: context deadline exceeded",
    "ConditionalCheckFailedException: The conditional request failed",
])
def test_transient_signatures(classifier, text):
    assert classifier.classify_text(text) == FailureKind.TRANSIENT


@pytest.mark.parametrize("text", [
    "Error: Unsupported argument",
    "Error: Missing required argument",
    "Error: Reference to undeclared input variable",
    "Error: Invalid value for input variable",
    "Error: No valid credential sources found",
    "AccessDenied: User is not authorized",
    "Error: Inconsistent dependency lock file",
    "Error: Backend initialization required, please run \"terraform init\"",
])
def test_permanent_signatures(classifier, text):
    assert classifier.classify_text(text) == FailureKind.PERMANENT


def test_unknown_output_defaults_to_permanent(classifier):
    assert classifier.classify_text("something unexpected") == FailureKind.PERMANENT
    assert classifier.classify_text("") == FailureKind.PERMANENT


def test_permanent_rules_take_precedence(classifier):
    text = 'Error: Unsupported argument\n  on main.tf line 4: timeout = "5m"'
    assert classifier.classify_text(text) == FailureKind.PERMANENT


def test_lock_file_is_not_a_state_lock(classifier):
    assert classifier.classify_text("Error: could not write lock file") == FailureKind.PERMANENT


def test_timed_out_result_is_timeout(classifier):
    result = CommandResult(exit_code=-1, stdout="", stderr="Error: Unsupported argument",
                           timed_out=True)
    assert classifier.classify(result) == FailureKind.TIMEOUT


def test_classify_reads_stdout_too(classifier):
    result = CommandResult(exit_code=1, stdout="Error: Error acquiring the state lock",
                           stderr="")
    assert classifier.classify(result) == FailureKind.TRANSIENT


def test_is_retryable():
    assert ErrorClassifier.is_retryable(FailureKind.TRANSIENT)
    assert ErrorClassifier.is_retryable(FailureKind.TIMEOUT)
    assert not ErrorClassifier.is_retryable(FailureKind.PERMANENT)


def test_add_rule_first_overrides_builtin(classifier):
    classifier.add_rule(r"unsupported argument", FailureKind.TRANSIENT)
    assert classifier.classify_text("Error: Unsupported argument") == FailureKind.TRANSIENT


def test_add_rule_last_only_catches_unmatched(classifier):
    classifier.add_rule(re.compile("weird"), FailureKind.TRANSIENT, first=False)
    assert classifier.classify_text("weird thing") == FailureKind.TRANSIENT
    assert classifier.classify_text("Error: Unsupported argument, weird") == FailureKind.PERMANENT


def test_custom_rules_and_default():
    classifier = ErrorClassifier(
        rules=[ClassificationRule.compile("flaky", FailureKind.TRANSIENT)],
        default=FailureKind.TRANSIENT,
    )
    assert classifier.classify_text("Error: Unsupported argument") == FailureKind.TRANSIENT
    assert len(classifier.rules) == 1


def test_from_config_orders_configured_patterns():
    config = RunnerConfig(
        transient_patterns=("special",),
        permanent_patterns=("special permanent",),
    )
    classifier = ErrorClassifier.from_config(config)

    assert classifier.classify_text("special permanent failure") == FailureKind.PERMANENT
    assert classifier.classify_text("special failure") == FailureKind.TRANSIENT
    assert classifier.rules[0].kind == FailureKind.PERMANENT


@pytest.mark.parametrize("line", [429, 502, 503, 504])
def test_source_line_numbers_are_not_http_status(classifier, line):
    text = (
        'Error: Duplicate resource "aws_instance" configuration\n\n'
        f"  on main.tf line {line}:\n"
        f' {line}: resource "aws_instance" "web" {{'
    )
    assert classifier.classify_text(text) == FailureKind.PERMANENT
