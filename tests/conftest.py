"""Shared test fixtures and utilities."""

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List
from unittest.mock import Mock

import pytest

from boilerplate_update.codemods import ManifestClient, RuntimeEnvironment, parse_manifest
from boilerplate_update.merge import ThreeWayMergeService
from boilerplate_update.orchestrator import UpdateDeps

from tests.fixtures.boilerplate import CODEMODS_URL, END, LOCAL, MANIFEST, START, write_tree


def git(root: Path, *args: str) -> str:
    """Run git in root and return its stdout."""
    result = subprocess.run(
        ["git", *args], cwd=str(root), capture_output=True, text=True, check=True
    )
    return result.stdout


def status_lines(root: Path) -> List[str]:
    """Porcelain status of root, sorted by path."""
    lines = git(root, "-c", "status.renames=false", "status", "--porcelain", "--untracked-files=all").splitlines()
    return sorted((line for line in lines if line), key=lambda line: line[3:])


@pytest.fixture(autouse=True)
def isolated_git(tmp_path, monkeypatch):
    """Keep user/system git configuration out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.delenv("BOILERPLATE_UPDATE_RUNTIME_MODES", raising=False)
    monkeypatch.delenv("BOILERPLATE_UPDATE_RUNTIME_VERSION", raising=False)
    return home


@pytest.fixture
def make_repo(tmp_path):
    """Factory fixture: a committed git repository holding the given files."""
    def _make_repo(files: Dict[str, str], name: str = "project") -> Path:
        root = write_tree(tmp_path / name, files)
        git(root, "init", "--quiet")
        git(root, "add", "--all")
        git(root, "commit", "--quiet", "--allow-empty", "-m", "initial")
        return root
    return _make_repo


@pytest.fixture
def project(make_repo):
    """The fixture project generated at 0.0.1 and edited locally, committed."""
    return make_repo(LOCAL)


@pytest.fixture
def snapshot_trees(tmp_path):
    """Materialized START and END trees keyed by version."""
    return {
        "0.0.1": write_tree(tmp_path / "snapshots" / "0.0.1", START),
        "0.0.2": write_tree(tmp_path / "snapshots" / "0.0.2", END),
    }


class FakeSnapshotProvider:
    """Snapshot provider serving pre-built trees."""

    def __init__(self, trees: Dict[str, Path]):
        self.trees = trees
        self.history_requests: List[str] = []
        self.materialized: List[str] = []

    def fetch_version_history(self, remote_url: str) -> List[str]:
        self.history_requests.append(remote_url)
        return list(self.trees)

    def materialize(self, remote_url: str, version: str, dest: Path) -> Path:
        self.materialized.append(version)
        shutil.copytree(self.trees[version], dest)
        return dest


@pytest.fixture
def provider(snapshot_trees):
    return FakeSnapshotProvider(snapshot_trees)


@pytest.fixture
def manifest_client():
    """ManifestClient double returning the fixture manifest."""
    client = Mock(spec=ManifestClient)
    client.fetch.return_value = parse_manifest(MANIFEST, CODEMODS_URL)
    return client


@pytest.fixture
def make_deps(provider, manifest_client):
    """Factory fixture for UpdateDeps wired to test doubles."""
    def _make_deps(**overrides) -> UpdateDeps:
        values = dict(
            snapshot_provider=provider,
            merge_service=ThreeWayMergeService(),
            manifest_client=manifest_client,
            codemod_runner=Mock(),
            open_url=Mock(),
            detect_environment=lambda: RuntimeEnvironment(version="3.12.0"),
            installed_version=lambda name: None,
            resolution_streams=(subprocess.DEVNULL, None, None),
        )
        values.update(overrides)
        return UpdateDeps(**values)
    return _make_deps
