"""Tests for the boilerplate-update command line."""

from concurrent.futures import Future
from unittest.mock import Mock

import pytest
import yaml
from typer.testing import CliRunner

from boilerplate_update.cli import app
from boilerplate_update.core import (
    AwaitingInteractiveResolution,
    Completed,
    ListCodemodsMode,
    MergeOutcome,
    PathStatus,
    ResetMode,
    ResolvedVersionPair,
    RunMode,
    StatsMode,
    StatusKind,
    UpdateResult,
)
from boilerplate_update.errors import ConflictResolutionAbandonedError, VersionNotFoundError

from tests.fixtures.boilerplate import LOCAL, PROJECT_TYPE, REMOTE_URL


VERSIONS = ResolvedVersionPair(from_version="0.0.1", to_version="0.0.2")


@pytest.fixture
def runner():
    """Create a CliRunner for in-process testing."""
    return CliRunner()


@pytest.fixture
def fake_updater(monkeypatch):
    """Replace BoilerplateUpdater in the CLI; returns the recorded calls."""
    calls = {"requests": [], "roots": [], "configs": [], "outcome": None, "error": None}

    class FakeUpdater:
        def __init__(self, root, deps=None, config=None):
            calls["roots"].append(root)
            calls["configs"].append(config)

        def update(self, request):
            calls["requests"].append(request)
            if calls["error"] is not None:
                raise calls["error"]
            return calls["outcome"]

    monkeypatch.setattr("boilerplate_update.cli.BoilerplateUpdater", FakeUpdater)
    return calls


def base_args(tmp_path):
    return ["--cwd", str(tmp_path), "--remote-url", REMOTE_URL, "--project-type", PROJECT_TYPE, "--from", "0.0.1"]


class TestErrors:
    def test_dirty_working_tree(self, runner, project):
        (project / "a-random-new-file").write_text("new\n")

        result = runner.invoke(app, base_args(project))

        assert result.exit_code == 1
        assert "You must start with a clean working directory" in result.output
        assert sorted(p.name for p in project.iterdir() if p.name != ".git") == sorted(
            [*LOCAL, "a-random-new-file"]
        )

    def test_update_error_exits_1(self, runner, tmp_path, fake_updater):
        fake_updater["error"] = VersionNotFoundError("9.9.9")

        result = runner.invoke(app, base_args(tmp_path))

        assert result.exit_code == 1
        assert "No version found matching '9.9.9'" in result.output

    def test_missing_remote_url(self, runner, tmp_path, fake_updater):
        result = runner.invoke(app, ["--cwd", str(tmp_path), "--project-type", PROJECT_TYPE, "--from", "0.0.1"])

        assert result.exit_code == 1
        assert "--remote-url" in result.output
        assert fake_updater["requests"] == []

    def test_missing_from(self, runner, tmp_path, fake_updater):
        result = runner.invoke(app, ["--cwd", str(tmp_path), "--remote-url", REMOTE_URL, "--project-type", "x"])

        assert result.exit_code == 1
        assert "--from" in result.output

    def test_malformed_config(self, runner, tmp_path, fake_updater):
        (tmp_path / ".boilerplate-update.yaml").write_text("remote_url: [unclosed\n")

        result = runner.invoke(app, base_args(tmp_path))

        assert result.exit_code == 1
        assert "malformed" in result.output


class TestModes:
    def test_flags_map_to_modes(self, runner, tmp_path, fake_updater):
        fake_updater["outcome"] = Completed(UpdateResult(mode="reset", versions=VERSIONS, merge=MergeOutcome()))

        runner.invoke(app, [*base_args(tmp_path), "--reset", "--run-codemods", "--to", "^0.0.2"])

        request = fake_updater["requests"][0]
        assert request.mode == ResetMode(run_codemods=True)
        assert request.start_version == "0.0.1"
        assert request.end_version == "^0.0.2"
        assert fake_updater["roots"] == [tmp_path.resolve()]

    def test_resolve_conflicts_is_ignored_by_reset(self, runner, tmp_path, fake_updater):
        fake_updater["outcome"] = Completed(UpdateResult(mode="reset", versions=VERSIONS, merge=MergeOutcome()))

        result = runner.invoke(app, [*base_args(tmp_path), "--reset", "--resolve-conflicts"])

        assert result.exit_code == 0
        assert fake_updater["requests"][0].mode == ResetMode()

    def test_stats_output_is_plain(self, runner, tmp_path, fake_updater):
        report = "project type: test-project\nfrom version: 0.0.1"
        fake_updater["outcome"] = Completed(UpdateResult(mode="stats", versions=VERSIONS, report=report))

        result = runner.invoke(app, [*base_args(tmp_path), "--stats-only"])

        assert result.exit_code == 0
        assert result.output == report + "\n"
        assert fake_updater["requests"][0].mode == StatsMode()

    def test_list_codemods_needs_no_versions(self, runner, tmp_path, fake_updater):
        fake_updater["outcome"] = Completed(UpdateResult(mode="list_codemods", manifest='{\n  "a": {}\n}'))

        result = runner.invoke(
            app, ["--cwd", str(tmp_path), "--list-codemods", "--codemods-url", "https://example.com/c.json"]
        )

        assert result.exit_code == 0
        assert result.output == '{\n  "a": {}\n}\n'
        assert fake_updater["requests"][0].mode == ListCodemodsMode()

    def test_compare_prints_nothing(self, runner, tmp_path, fake_updater):
        fake_updater["outcome"] = Completed(None)

        result = runner.invoke(app, [*base_args(tmp_path), "--compare-only"])

        assert result.exit_code == 0
        assert result.output == ""

    def test_run_summary(self, runner, tmp_path, fake_updater):
        merge = MergeOutcome(changed_paths=[
            PathStatus(path="README.md", status=StatusKind.MODIFIED),
            PathStatus(path="setup.cfg", status=StatusKind.DELETED),
        ])
        fake_updater["outcome"] = Completed(
            UpdateResult(mode="run", versions=VERSIONS, merge=merge, codemods=["commands-test-codemod"])
        )

        result = runner.invoke(app, [*base_args(tmp_path), "--run-codemods"])

        assert result.exit_code == 0
        assert "README.md" in result.output
        assert "setup.cfg" in result.output
        assert "1 modified, 1 deleted" in result.output
        assert "commands-test-codemod" in result.output
        assert fake_updater["requests"][0].mode == RunMode(run_codemods=True)

    def test_waits_for_interactive_resolution(self, runner, tmp_path, fake_updater):
        completion = Future()
        completion.set_result(UpdateResult(mode="run", versions=VERSIONS, merge=MergeOutcome()))
        fake_updater["outcome"] = AwaitingInteractiveResolution(process=Mock(), completion=completion)

        result = runner.invoke(app, [*base_args(tmp_path), "--resolve-conflicts"])

        assert result.exit_code == 0
        assert "No changes" in result.output
        assert fake_updater["requests"][0].mode == RunMode(resolve_conflicts=True)

    def test_abandoned_resolution_exits_1(self, runner, tmp_path, fake_updater):
        completion = Future()
        completion.set_exception(ConflictResolutionAbandonedError(1))
        fake_updater["outcome"] = AwaitingInteractiveResolution(process=Mock(), completion=completion)

        result = runner.invoke(app, [*base_args(tmp_path), "--resolve-conflicts"])

        assert result.exit_code == 1
        assert "did not complete" in result.output


class TestConfigDefaults:
    def test_options_default_from_config(self, runner, tmp_path, fake_updater):
        (tmp_path / ".boilerplate-update.yaml").write_text(yaml.safe_dump({
            "remote_url": REMOTE_URL,
            "project_type": PROJECT_TYPE,
            "codemods_url": "https://example.com/codemods.json",
        }))
        fake_updater["outcome"] = Completed(None)

        result = runner.invoke(app, ["--cwd", str(tmp_path), "--from", "0.0.1", "--compare-only"])

        assert result.exit_code == 0
        request = fake_updater["requests"][0]
        assert request.remote_url == REMOTE_URL
        assert request.project_type == PROJECT_TYPE
        assert request.codemods_url == "https://example.com/codemods.json"

    def test_flags_override_config(self, runner, tmp_path, fake_updater):
        (tmp_path / ".boilerplate-update.yaml").write_text(yaml.safe_dump({"remote_url": "https://other"}))
        fake_updater["outcome"] = Completed(None)

        runner.invoke(app, [*base_args(tmp_path), "--compare-only", "--ignore", "README.md"])

        request = fake_updater["requests"][0]
        assert request.remote_url == REMOTE_URL
        assert request.ignored_files == ["README.md"]
