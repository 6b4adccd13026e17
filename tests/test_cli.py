"""Tests for the Mosaic CLI.

Tests cover:
- Main app (--help, --version)
- search against restored plugins
- plugin / repo / resume / sidecar command groups

Every test points MOSAIC_DATA_DIR at a temporary directory and disables
sidecar autostart so nothing touches the real home directory or spawns a
process.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from mosaic.cli import app
from mosaic.models import InstalledPluginRecord, PackageKind
from mosaic.plugins.storage import InstalledPluginStore, PackageStore
from mosaic.resume import ResumeStore

from tests.conftest import EXAMPLE_SOURCE


REPO = "https://repo.example/repo.json"


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Isolated data directory and a sidecar port nothing listens on."""
    path = tmp_path / "mosaic-data"
    monkeypatch.setenv("MOSAIC_DATA_DIR", str(path))
    monkeypatch.setenv("MOSAIC_SIDECAR_AUTOSTART", "false")
    monkeypatch.setenv("MOSAIC_SIDECAR_PORT", "1")
    monkeypatch.setenv("MOSAIC_SIDECAR_BUNDLE_DIR", "no-such-dir")
    monkeypatch.setenv("MOSAIC_LOG_LEVEL", "WARNING")
    return path


@pytest.fixture
def installed_example(data_dir):
    """An enabled scripted plugin with its package already cached."""
    PackageStore(data_dir / "plugins").save("ExampleProvider", REPO, EXAMPLE_SOURCE.encode("utf-8"))
    InstalledPluginStore(data_dir / "installed_plugins.json").upsert(InstalledPluginRecord(
        internal_name="ExampleProvider",
        url="https://repo.example/ExampleProvider.pkg",
        version=1,
        repository_url=REPO,
        kind=PackageKind.SCRIPTED_SOURCE,
    ))
    return data_dir


# ===========================================================================
# Main App
# ===========================================================================


class TestMainApp:
    """Tests for the top-level app."""

    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for group in ("plugin", "repo", "sidecar", "resume", "search"):
            assert group in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Mosaic version 0.1.0" in result.output

    def test_no_args_shows_help(self, runner):
        result = runner.invoke(app, [])
        assert "Usage" in result.output


# ===========================================================================
# search
# ===========================================================================


class TestSearch:
    """Tests for the search command."""

    def test_query_too_short(self, runner, data_dir):
        result = runner.invoke(app, ["search", "a"])
        assert result.exit_code == 0
        assert "Query too short" in result.output

    def test_no_providers(self, runner, data_dir):
        result = runner.invoke(app, ["search", "dune"])
        assert result.exit_code == 0
        assert "No providers are installed" in result.output

    def test_restored_plugin_is_searched(self, runner, installed_example):
        result = runner.invoke(app, ["search", "xy"])
        assert result.exit_code == 0
        assert "xy one" in result.output
        assert "xy two" in result.output

    def test_json_output(self, runner, installed_example):
        result = runner.invoke(app, ["search", "xy", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [r["name"] for r in data["merged_results"]] == ["xy one", "xy two"]


# ===========================================================================
# plugin
# ===========================================================================


class TestPluginCommands:
    """Tests for plugin management commands."""

    def test_list_empty(self, runner, data_dir):
        result = runner.invoke(app, ["plugin", "list"])
        assert result.exit_code == 0
        assert "No plugins installed" in result.output

    def test_list_installed(self, runner, installed_example):
        result = runner.invoke(app, ["plugin", "list", "--json"])
        assert result.exit_code == 0
        records = json.loads(result.stdout)
        assert records[0]["internal_name"] == "ExampleProvider"
        assert records[0]["enabled"] is True

    def test_uninstall_then_enable(self, runner, installed_example):
        result = runner.invoke(app, ["plugin", "uninstall", "ExampleProvider"])
        assert result.exit_code == 0
        assert "Plugin uninstalled" in result.output

        record = InstalledPluginStore(installed_example / "installed_plugins.json").get("ExampleProvider")
        assert record.enabled is False

        result = runner.invoke(app, ["plugin", "enable", "ExampleProvider"])
        assert result.exit_code == 0
        assert "Plugin installed" in result.output

    def test_uninstall_purge(self, runner, installed_example):
        result = runner.invoke(app, ["plugin", "uninstall", "ExampleProvider", "--purge"])
        assert result.exit_code == 0
        assert InstalledPluginStore(installed_example / "installed_plugins.json").all() == []

    def test_enable_unknown(self, runner, data_dir):
        result = runner.invoke(app, ["plugin", "enable", "Ghost"])
        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_reinstall_unknown(self, runner, data_dir):
        result = runner.invoke(app, ["plugin", "reinstall", "Ghost"])
        assert result.exit_code == 1
        assert "Plugin Ghost is not installed" in result.output


# ===========================================================================
# repo
# ===========================================================================


class TestRepoCommands:
    """Tests for repository commands."""

    def test_list_empty(self, runner, data_dir):
        result = runner.invoke(app, ["repo", "list"])
        assert result.exit_code == 0
        assert "No repositories added" in result.output

    def test_remove_unknown(self, runner, data_dir):
        result = runner.invoke(app, ["repo", "remove", REPO])
        assert result.exit_code == 1
        assert "Repository not found" in result.output


# ===========================================================================
# resume
# ===========================================================================


class TestResumeCommands:
    """Tests for resume position commands."""

    def test_list_empty(self, runner, data_dir):
        result = runner.invoke(app, ["resume", "list"])
        assert result.exit_code == 0
        assert "No resume positions stored" in result.output

    def test_list_and_clear(self, runner, data_dir):
        ResumeStore(data_dir / "resume.json").upsert("movie-1", 50, 100, label="Dune")

        result = runner.invoke(app, ["resume", "list"])
        assert result.exit_code == 0
        assert "Dune" in result.output

        result = runner.invoke(app, ["resume", "clear", "movie-1"])
        assert result.exit_code == 0
        assert "Cleared 1 resume position(s)" in result.output

    def test_clear_unknown(self, runner, data_dir):
        result = runner.invoke(app, ["resume", "clear", "ghost"])
        assert result.exit_code == 1

    def test_clear_requires_target(self, runner, data_dir):
        result = runner.invoke(app, ["resume", "clear"])
        assert result.exit_code == 1
        assert "content id or --all" in result.output

    def test_clear_all(self, runner, data_dir):
        store = ResumeStore(data_dir / "resume.json")
        store.upsert("a", 50, 100)
        store.upsert("b", 50, 100)

        result = runner.invoke(app, ["resume", "clear", "--all"])
        assert result.exit_code == 0
        assert "Cleared 2" in result.output


# ===========================================================================
# sidecar
# ===========================================================================


class TestSidecarCommands:
    """Tests for sidecar commands."""

    def test_status_unreachable(self, runner, data_dir):
        result = runner.invoke(app, ["sidecar", "status"])
        assert result.exit_code == 0
        assert "Control plane" in result.output
        assert "FAIL" in result.output

    def test_status_json(self, runner, data_dir):
        result = runner.invoke(app, ["sidecar", "status", "--json"])
        assert result.exit_code == 0
        info = json.loads(result.stdout)
        assert info["healthy"] is False
        assert info["bundle_path"] is None
        assert info["state"] == "not_started"
