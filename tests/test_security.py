"""
Tests for security module - InputSanitizer and OutputRedactor.
"""

import os
import pytest

from terrarun.errors import ConfigurationError
from terrarun.security import REDACTED, InputSanitizer, OutputRedactor, SecurityError


def test_sanitize_variable_name_valid():
    """Test valid variable names are accepted."""
    valid_names = [
        "region",
        "instance_type",
        "aws_access_key",
        "_private_key",
        "var-with-hyphens",
        "MixedCase123",
    ]

    for name in valid_names:
        result = InputSanitizer.sanitize_variable_name(name)
        assert result == name


def test_sanitize_variable_name_invalid():
    """Test invalid variable names raise SecurityError."""
    invalid_names = [
        "",  # Empty
        "123invalid",  # Starts with digit
        "has spaces",  # Contains spaces
        "has@symbol",  # Invalid character
        "has.dot",  # Invalid character
        "-starts-with-hyphen",  # Would be read as a flag
    ]

    for name in invalid_names:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_variable_name(name)


def test_sanitize_variable_name_too_long():
    """Test that extremely long names are rejected."""
    with pytest.raises(SecurityError):
        InputSanitizer.sanitize_variable_name("a" * 500)


def test_sanitize_variable_value_passes_shell_chars():
    """Values never reach a shell, so metacharacters are passed through."""
    values = [
        "us-east-1",
        "value;rm -rf /",
        "value|cat",
        "value$HOME",
        "key=value",
        'quoted "text"',
    ]

    for value in values:
        assert InputSanitizer.sanitize_variable_value(value) == value


def test_sanitize_variable_value_blocks_control_chars():
    for value in ["line\nbreak", "carriage\rreturn", "null\x00byte"]:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_variable_value(value)


def test_sanitize_variable_value_types():
    assert InputSanitizer.sanitize_variable_value(True) == "true"
    assert InputSanitizer.sanitize_variable_value(False) == "false"
    assert InputSanitizer.sanitize_variable_value(42) == "42"
    assert InputSanitizer.sanitize_variable_value(3.5) == "3.5"
    assert InputSanitizer.sanitize_variable_value(["a", "b"]) == '["a", "b"]'
    assert InputSanitizer.sanitize_variable_value({"k": 1}) == '{"k": 1}'
    assert InputSanitizer.sanitize_variable_value(None) == ""


def test_sanitize_variable_value_too_long():
    with pytest.raises(SecurityError):
        InputSanitizer.sanitize_variable_value("x" * 5000)


def test_sanitize_backend_key():
    assert InputSanitizer.sanitize_backend_key("bucket") == "bucket"
    assert InputSanitizer.sanitize_backend_key("assume_role.role_arn") == "assume_role.role_arn"
    for key in ["", "has space", "-flag", "a=b"]:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_backend_key(key)


def test_sanitize_workspace_name_valid():
    """Test valid workspace names."""
    for name in ["default", "production", "dev-environment", "test_workspace", "env123"]:
        assert InputSanitizer.sanitize_workspace_name(name) == name


def test_sanitize_workspace_name_invalid():
    """Test invalid workspace names."""
    for name in ["", "-starts-with-hyphen", "has spaces", "has@symbol", "a" * 91]:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_workspace_name(name)


def test_sanitize_resource_address():
    valid = [
        "aws_instance.web",
        "module.vpc.aws_subnet.private[0]",
        'aws_instance.web["primary"]',
        "data.aws_ami.ubuntu",
    ]
    for address in valid:
        assert InputSanitizer.sanitize_resource_address(address) == address

    for address in ["", "-destroy", "aws_instance.web; rm", "a b"]:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_resource_address(address)


def test_sanitize_duration():
    for duration in ["0s", "30s", "5m", "1h30m", "500ms"]:
        assert InputSanitizer.sanitize_duration(duration) == duration
    for duration in ["", "5", "soon", "5 m", "-1s"]:
        with pytest.raises(SecurityError):
            InputSanitizer.sanitize_duration(duration)


def test_sanitize_path_requires_existing():
    """Test that path must exist."""
    with pytest.raises(ConfigurationError):
        InputSanitizer.sanitize_path("/nonexistent/path")


def test_sanitize_path_requires_directory(tmp_path):
    """Test that path must be a directory, not a file."""
    test_file = tmp_path / "test.txt"
    test_file.write_text("test")

    with pytest.raises(ConfigurationError):
        InputSanitizer.sanitize_path(str(test_file))


def test_sanitize_path_returns_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "project").mkdir()
    result = InputSanitizer.sanitize_path("project")
    assert os.path.isabs(result)
    assert result == os.path.realpath(str(tmp_path / "project"))


def test_sanitize_file_path_relative_to_base(tmp_path):
    result = InputSanitizer.sanitize_file_path("plans/tfplan", str(tmp_path))
    assert result == os.path.join(str(tmp_path), "plans", "tfplan")

    absolute = str(tmp_path / "other" / "tfplan")
    assert InputSanitizer.sanitize_file_path(absolute, "/elsewhere") == absolute

    with pytest.raises(SecurityError):
        InputSanitizer.sanitize_file_path("", str(tmp_path))


def test_is_safe_command_arg():
    """Test command argument safety check."""
    assert InputSanitizer.is_safe_command_arg("normal_value") is True
    assert InputSanitizer.is_safe_command_arg("value-with-hyphens") is True
    assert InputSanitizer.is_safe_command_arg("value\x00with_null") is False
    assert InputSanitizer.is_safe_command_arg("a" * 20000) is False


def test_security_error_is_configuration_error():
    assert issubclass(SecurityError, ConfigurationError)


class TestOutputRedactor:
    def test_redacts_all_occurrences(self):
        redactor = OutputRedactor(["secret123"])
        assert redactor.redact("key=secret123 again secret123") == f"key={REDACTED} again {REDACTED}"

    def test_longest_value_wins(self):
        redactor = OutputRedactor(["abc", "abcdef"])
        assert redactor.redact("token abcdef") == f"token {REDACTED}"

    def test_ignores_empty_values(self):
        redactor = OutputRedactor(["", "x1"])
        assert redactor.sensitive_values == ["x1"]
        assert redactor.redact("") == ""

    def test_clear(self):
        redactor = OutputRedactor(["secret"])
        redactor.clear()
        assert redactor.redact("secret") == "secret"
