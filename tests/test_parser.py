"""
Tests for TerraformParser and TfvarsHandler.
"""

import pytest

from terrarun.core import TerraformParser, TfvarsHandler
from terrarun.core.terraform_parser import unwrap
from terrarun.errors import ConfigurationError


VARIABLES_TF = '''
variable "region" {
  type    = string
  default = "us-east-1"
}

variable "instance_type" {
  type    = string
  default = "t3.micro"
}

variable "enable_monitoring" {
  type    = bool
  default = false
}

variable "api_key" {
  type      = string
  sensitive = true
}
'''


@pytest.fixture
def simple_project_path(tmp_path):
    """A small project with four variables, one of them sensitive."""
    (tmp_path / "variables.tf").write_text(VARIABLES_TF)
    (tmp_path / "main.tf").write_text('resource "null_resource" "x" {}\n')
    return str(tmp_path)


def test_parser_finds_variables(simple_project_path):
    """Test that parser finds all variables in simple project."""
    parser = TerraformParser(simple_project_path)
    var_names = [v.name for v in parser.parse_variables()]

    assert sorted(var_names) == ["api_key", "enable_monitoring", "instance_type", "region"]


def test_parser_detects_sensitive(simple_project_path):
    """Test that parser correctly identifies sensitive variables."""
    parser = TerraformParser(simple_project_path)
    assert parser.sensitive_variable_names() == {"api_key"}


def test_parser_detects_required(simple_project_path):
    """Test that parser identifies required variables (no default)."""
    variables = {v.name: v for v in TerraformParser(simple_project_path).parse_variables()}

    assert variables["api_key"].is_required() is True
    assert variables["region"].is_required() is False


def test_parser_extracts_defaults(simple_project_path):
    """Test that parser extracts default values."""
    variables = {v.name: v for v in TerraformParser(simple_project_path).parse_variables()}

    assert variables["region"].default == "us-east-1"
    assert variables["enable_monitoring"].default in (False, "false")


def test_parser_skips_broken_files(tmp_path):
    (tmp_path / "good.tf").write_text('variable "ok" {}\n')
    (tmp_path / "broken.tf").write_text('variable "bad" {\n')

    names = [v.name for v in TerraformParser(str(tmp_path)).parse_variables()]
    assert names == ["ok"]


def test_parser_empty_directory(tmp_path):
    parser = TerraformParser(str(tmp_path))
    assert parser.parse_variables() == []
    assert parser.detect_backend() == "local"


@pytest.mark.parametrize("block, expected", [
    ('terraform {\n  backend "s3" {\n    bucket = "b"\n  }\n}\n', "s3"),
    ('terraform {\n  backend "gcs" {}\n}\n', "gcs"),
    ('terraform {\n  required_version = ">= 1.0"\n}\n', "local"),
])
def test_detect_backend(tmp_path, block, expected):
    (tmp_path / "backend.tf").write_text(block)
    assert TerraformParser(str(tmp_path)).detect_backend() == expected


def test_unwrap():
    assert unwrap(["x"]) == "x"
    assert unwrap('"quoted"') == "quoted"
    assert unwrap(["a", "b"]) == ["a", "b"]
    assert unwrap(5) == 5


class TestTfvarsHandler:
    def test_parse_tfvars(self, tmp_path):
        path = tmp_path / "prod.tfvars"
        path.write_text('region = "eu-west-1"\ncount = 3\nenabled = true\n')

        values = TfvarsHandler.parse_tfvars(str(path))

        assert values["region"] == "eu-west-1"
        assert values["count"] == 3
        assert values["enabled"] in (True, "true")

    def test_parse_tfvars_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TfvarsHandler.parse_tfvars(str(tmp_path / "missing.tfvars"))

    def test_parse_tfvars_invalid(self, tmp_path):
        path = tmp_path / "bad.tfvars"
        path.write_text('region = "unterminated\n')
        with pytest.raises(ValueError):
            TfvarsHandler.parse_tfvars(str(path))

    def test_load_var_file_errors_are_configuration_errors(self, tmp_path):
        with pytest.raises(ConfigurationError):
            TfvarsHandler.load_var_file(str(tmp_path / "missing.tfvars"))

        path = tmp_path / "bad.tfvars"
        path.write_text("= nope\n")
        with pytest.raises(ConfigurationError):
            TfvarsHandler.load_var_file(str(path))

    def test_load_json_var_file_is_not_parsed(self, tmp_path):
        path = tmp_path / "vars.tfvars.json"
        path.write_text('{"region": "eu-west-1"}')
        assert TfvarsHandler.load_var_file(str(path)) == {}

    def test_sensitive_values(self):
        values = {"password": "hunter2", "port": 5432, "flag": True, "tags": {"a": "b"}}
        names = ["password", "port", "flag", "tags", "missing"]

        assert TfvarsHandler.sensitive_values(values, names) == ["hunter2", "5432"]
