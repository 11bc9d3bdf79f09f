"""Tests for workspace management.

Tests for WorkspaceManager (mocked executor) and the in-memory
WorkspaceCache.
"""

import os
from datetime import datetime, timedelta
from dataclasses import replace

import pytest

from terrarun.core.workspace_manager import (
    WorkspaceCache,
    WorkspaceInfo,
    WorkspaceManager,
    WorkspaceStatus,
    current_workspace_name,
)
from terrarun.security import SecurityError

from conftest import failed, invocation_of, ok


class TestWorkspaceManager:
    """Tests for WorkspaceManager command construction and parsing."""

    @pytest.fixture
    def manager(self, mock_executor, tf_dir):
        return WorkspaceManager(tf_dir, mock_executor)

    def test_list_workspaces_parses_output(self, manager, mock_executor):
        mock_executor.execute.return_value = ok("  default\n* staging\n  production\n")
        result = manager.list_workspaces()

        assert result == [
            WorkspaceInfo("default", False),
            WorkspaceInfo("staging", True),
            WorkspaceInfo("production", False),
        ]
        assert invocation_of(mock_executor).arguments == ("workspace", "list")

    def test_list_workspaces_error_returns_default(self, manager, mock_executor):
        mock_executor.execute.return_value = failed()
        assert manager.list_workspaces() == [WorkspaceInfo("default", True)]

    def test_get_current_workspace(self, manager, mock_executor):
        mock_executor.execute.return_value = ok("staging\n")
        assert manager.get_current_workspace() == "staging"
        assert invocation_of(mock_executor).operation == "workspace show"

    def test_get_current_workspace_error_returns_default(self, manager, mock_executor):
        mock_executor.execute.return_value = failed()
        assert manager.get_current_workspace() == "default"

    def test_switch_workspace(self, manager, mock_executor):
        assert manager.switch_workspace("staging") is True
        assert invocation_of(mock_executor).arguments == ("workspace", "select", "staging")

    def test_switch_workspace_failure(self, manager, mock_executor):
        mock_executor.execute.return_value = failed("Workspace \"nope\" doesn't exist.")
        assert manager.switch_workspace("nope") is False

    def test_create_workspace(self, manager, mock_executor):
        assert manager.create_workspace("feature-1") is True
        assert invocation_of(mock_executor).arguments == ("workspace", "new", "feature-1")

    def test_delete_workspace_force(self, manager, mock_executor):
        assert manager.delete_workspace("old", force=True) is True
        assert invocation_of(mock_executor).arguments == ("workspace", "delete", "-force", "old")

    def test_uses_workspace_settings(self, manager, mock_executor):
        manager.switch_workspace("staging")
        inv = invocation_of(mock_executor)
        assert inv.timeout == 60
        assert inv.max_retries == 0

    @pytest.mark.parametrize("name", ["bad name!", "-force", ""])
    def test_rejects_invalid_names(self, manager, mock_executor, name):
        with pytest.raises(SecurityError):
            manager.create_workspace(name)
        with pytest.raises(SecurityError):
            manager.switch_workspace(name)
        mock_executor.execute.assert_not_called()


class TestCurrentWorkspaceName:
    def test_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TF_WORKSPACE", raising=False)
        assert current_workspace_name(str(tmp_path)) == "default"

    def test_environment_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TF_WORKSPACE", raising=False)
        (tmp_path / ".terraform").mkdir()
        (tmp_path / ".terraform" / "environment").write_text("staging\n")
        assert current_workspace_name(str(tmp_path)) == "staging"

    def test_tf_workspace_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TF_WORKSPACE", "prod")
        assert current_workspace_name(str(tmp_path)) == "prod"


class TestWorkspaceCache:
    def test_successful_init_is_active(self, tmp_path):
        cache = WorkspaceCache()
        record = cache.record_init(str(tmp_path), "default", "s3", True)

        assert record.status == WorkspaceStatus.ACTIVE
        assert record.backend == "s3"
        assert record.path == os.path.abspath(str(tmp_path))
        assert cache.get(str(tmp_path)) == record

    def test_failed_init_without_history_is_unknown(self, tmp_path):
        cache = WorkspaceCache()
        record = cache.record_init(str(tmp_path), "default", "local", False)
        assert record.status == WorkspaceStatus.UNKNOWN
        assert record.last_initialized is None

    def test_failed_reinit_is_stale_and_keeps_timestamp(self, tmp_path):
        cache = WorkspaceCache()
        first = cache.record_init(str(tmp_path), "default", "local", True)
        second = cache.record_init(str(tmp_path), "default", "local", False)

        assert second.status == WorkspaceStatus.STALE
        assert second.last_initialized == first.last_initialized

    def test_last_init_wins(self, tmp_path):
        cache = WorkspaceCache()
        cache.record_init(str(tmp_path), "default", "local", False)
        cache.record_init(str(tmp_path), "default", "s3", True)
        assert cache.get(str(tmp_path)).status == WorkspaceStatus.ACTIVE
        assert len(cache.all()) == 1

    def test_old_records_are_stale(self, tmp_path):
        cache = WorkspaceCache(stale_after=60)
        record = cache.record_init(str(tmp_path), "default", "local", True)
        key = (record.path, "default")
        cache._records[key] = replace(
            record, last_initialized=datetime.now() - timedelta(minutes=5)
        )

        assert cache.get(str(tmp_path)).status == WorkspaceStatus.STALE

    def test_records_are_per_workspace(self, tmp_path):
        cache = WorkspaceCache()
        cache.record_init(str(tmp_path), "default", "local", True)
        cache.record_init(str(tmp_path), "staging", "local", True)

        assert len(cache.all()) == 2
        assert cache.get(str(tmp_path), "missing") is None

        cache.clear()
        assert cache.all() == []
