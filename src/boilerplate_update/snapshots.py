"""Boilerplate snapshot acquisition.

Two sources produce the same SnapshotPair:

- Output repository: the canonical repository holding the generator's
  output, tagged "v<version>". Each side is a shallow clone of its tag,
  optionally kept in a local snapshot cache.
- Custom diff: caller-supplied factories build each side (from a locally
  installed generator or a remote one) and return its path.

Snapshots are read-only inputs of the merge; nothing here ever writes into
a returned tree after handing it out.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Protocol

import platformdirs
import portalocker

from . import git
from .constants import CACHE_DIR_ENV, TAG_PREFIX
from .core import ProjectOptions, ResolvedVersionPair, SnapshotPair, UpdateRequest
from .errors import SnapshotUnavailableError, UpdateError
from .versions import parse_version_history

logger = logging.getLogger(__name__)

COMPLETE_MARKER = ".complete"


class SnapshotProvider(Protocol):
    """Source of boilerplate versions and their materialized trees."""

    def fetch_version_history(self, remote_url: str) -> List[str]:
        """Return every known version, oldest first."""
        ...

    def materialize(self, remote_url: str, version: str, dest: Path) -> Path:
        """Materialize version into dest (or elsewhere) and return its path."""
        ...


def _get_default_cache_dir() -> Path:
    """Cache directory from the environment or the platform default."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_cache_dir("boilerplate-update"))


class SnapshotCache:
    """On-disk cache of materialized snapshots.

    Directory Structure:
        <cache_root>/snapshots/<sha256(remote_url)[:16]>/<version>/
        <cache_root>/snapshots/<sha256(remote_url)[:16]>/<version>.complete

    A snapshot is only used once its .complete marker exists: it is built in
    a temporary sibling, renamed into place and then marked, all while
    holding a per-snapshot lock.
    """

    def __init__(self, root: Optional[Path] = None, lock_timeout: float = 300):
        self.root = Path(root) if root else _get_default_cache_dir()
        self.lock_timeout = lock_timeout
        self.snapshots_dir = self.root / "snapshots"
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, remote_url: str, version: str) -> Path:
        """Get cache path for a repository version."""
        repo_key = hashlib.sha256(remote_url.encode()).hexdigest()[:16]
        return self.snapshots_dir / repo_key / version

    def _marker_for(self, dst: Path) -> Path:
        # Kept beside the snapshot so the tree holds only boilerplate files
        return dst.parent / f"{dst.name}{COMPLETE_MARKER}"

    def has(self, remote_url: str, version: str) -> bool:
        """Check if a complete snapshot is cached."""
        return self._marker_for(self.path_for(remote_url, version)).exists()

    def ensure_present(
        self,
        remote_url: str,
        version: str,
        fetch_to_path: Callable[[Path], None],
    ) -> Path:
        """Return the cached snapshot, fetching it first if necessary.

        Args:
            remote_url: Output repository URL
            version: Version to cache
            fetch_to_path: Callback that materializes the snapshot into a
                directory that does not exist yet
        """
        dst = self.path_for(remote_url, version)
        marker = self._marker_for(dst)
        if marker.exists():
            return dst

        dst.parent.mkdir(parents=True, exist_ok=True)
        lock_path = dst.parent / f"{dst.name}.lock"

        with portalocker.Lock(str(lock_path), "w", timeout=self.lock_timeout):
            # Re-check after acquiring lock
            if marker.exists():
                return dst

            # Leftover from a crashed fetch
            if dst.exists():
                shutil.rmtree(dst)

            staging = Path(tempfile.mkdtemp(prefix=f".{dst.name}-", dir=str(dst.parent)))
            target = staging / "tree"
            try:
                fetch_to_path(target)
                os.replace(str(target), str(dst))
                marker.touch()
                logger.debug("Snapshot cached: %s", dst)
            finally:
                with contextlib.suppress(OSError):
                    shutil.rmtree(staging)

        return dst


class GitSnapshotProvider:
    """Snapshot provider backed by a git output repository."""

    def __init__(self, cache: Optional[SnapshotCache] = None):
        self.cache = cache

    def fetch_version_history(self, remote_url: str) -> List[str]:
        tags = git.ls_remote_tags(remote_url)
        return [str(v) for v in parse_version_history(tags)]

    def materialize(self, remote_url: str, version: str, dest: Path) -> Path:
        tag = f"{TAG_PREFIX}{version}"
        if self.cache is None:
            logger.info("Checking out %s from %s", tag, remote_url)
            return git.clone_tag(remote_url, tag, dest)

        def fetch(path: Path) -> None:
            logger.info("Checking out %s from %s into cache", tag, remote_url)
            git.clone_tag(remote_url, tag, path)

        return self.cache.ensure_present(remote_url, version, fetch)


def installed_version(package_name: str) -> Optional[str]:
    """Version of a package installed in the current environment, if any."""
    try:
        return metadata.version(package_name)
    except metadata.PackageNotFoundError:
        return None


def _check_tree(side: str, path: Path) -> Path:
    if not path.is_dir():
        raise SnapshotUnavailableError(f"{side} snapshot", f"{path} is not a directory")
    return path


def _remote_snapshots(
    request: UpdateRequest,
    versions: ResolvedVersionPair,
    provider: SnapshotProvider,
    workdir: Path,
) -> SnapshotPair:
    paths = []
    for side, version in (("start", versions.from_version), ("end", versions.to_version)):
        try:
            path = provider.materialize(request.remote_url, version, workdir / side)
        except (UpdateError, OSError, portalocker.LockException) as e:
            raise SnapshotUnavailableError(f"{side} snapshot", str(e) or type(e).__name__) from e
        paths.append(_check_tree(side, Path(path)))
    return SnapshotPair(old_path=paths[0], new_path=paths[1])


def _custom_diff_snapshots(
    request: UpdateRequest,
    versions: ResolvedVersionPair,
    installed: Callable[[str], Optional[str]],
) -> SnapshotPair:
    custom = request.custom_diff
    if custom is None:
        raise ValueError("request has no custom diff options")

    paths = []
    sides = (
        ("start", versions.from_version, custom.start_options),
        ("end", versions.to_version, custom.end_options),
    )
    for side, version, options in sides:
        project_options = ProjectOptions(
            project_name=custom.project_name,
            package_name=custom.package_name,
            version=version,
            side=side,
            options=options,
        )
        # Prefer the locally installed generator when it is the right version
        if installed(custom.package_name) == version:
            factory = custom.create_project_from_cache
            source = "cache"
        else:
            factory = custom.create_project_from_remote
            source = "remote"

        logger.info("Creating %s project %s@%s from %s", side, custom.package_name, version, source)
        try:
            path = factory(project_options)
        except Exception as e:
            raise SnapshotUnavailableError(f"{side} snapshot", f"{type(e).__name__}: {e}") from e
        if path is None:
            raise SnapshotUnavailableError(f"{side} snapshot", "project factory returned no path")
        paths.append(_check_tree(side, Path(path)))
    return SnapshotPair(old_path=paths[0], new_path=paths[1])


@contextmanager
def open_snapshots(
    request: UpdateRequest,
    versions: ResolvedVersionPair,
    provider: SnapshotProvider,
    installed: Callable[[str], Optional[str]] = installed_version,
) -> Iterator[SnapshotPair]:
    """Acquire the snapshot pair for the request's source.

    Temporary checkouts are removed when the context exits; cached snapshots
    and custom-diff paths are left alone.

    Raises:
        SnapshotUnavailableError: If either side cannot be acquired
    """
    with tempfile.TemporaryDirectory(prefix="boilerplate-update-") as tmp:
        if request.custom_diff is not None:
            pair = _custom_diff_snapshots(request, versions, installed)
        else:
            pair = _remote_snapshots(request, versions, provider, Path(tmp))
        logger.debug("Snapshots: %s -> %s", pair.old_path, pair.new_path)
        yield pair
