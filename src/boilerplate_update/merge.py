"""Applying the boilerplate delta to the working tree.

The merge service takes the old and new snapshots and rewrites the working
tree so that it reflects what changed between them, keeping local edits.
Paths it cannot merge automatically are left with conflict markers and
registered as unmerged in the index so `git status` and `git mergetool`
see them. Everything else is left unstaged.
"""

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from . import git
from .core import MergeOutcome, PathStatus, SnapshotPair, StatusKind
from .errors import GitCommandError, MergeError
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)


class MergeService(Protocol):
    """External diff-apply service."""

    def apply(self, old_path: Path, new_path: Path, root: Path) -> MergeOutcome:
        """Apply the old -> new delta to the working tree at root."""
        ...


def scan_tree(tree: Path, ignore: IgnoreSpec) -> Dict[str, Path]:
    """Map every non-ignored file under tree to its absolute path, keyed by POSIX relpath."""
    files = {}
    for dirpath, dirnames, filenames in os.walk(tree):
        rel_dir = Path(dirpath).relative_to(tree).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        dirnames[:] = sorted(d for d in dirnames if ignore.should_traverse(prefix + d))
        for name in filenames:
            relpath = prefix + name
            if not ignore.is_ignored(relpath):
                files[relpath] = Path(dirpath) / name
    return files


def _file_mode(path: Path) -> str:
    return "100755" if os.access(path, os.X_OK) else "100644"


def _read(path: Optional[Path]) -> Optional[bytes]:
    if path is None or not path.is_file():
        return None
    return path.read_bytes()


def _write(dest: Path, content: bytes, mode_source: Optional[Path] = None) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(content)
    if mode_source is not None:
        shutil.copymode(mode_source, dest)


def _remove(root: Path, dest: Path) -> None:
    dest.unlink()
    # git does not track directories, so drop the ones left empty
    parent = dest.parent
    while parent != root and parent.is_dir() and not any(parent.iterdir()):
        parent.rmdir()
        parent = parent.parent


class ThreeWayMergeService:
    """Merge service built on `git merge-file` and index stages."""

    def __init__(self, ignore: Optional[IgnoreSpec] = None):
        self.ignore = ignore or IgnoreSpec()

    def apply(self, old_path: Path, new_path: Path, root: Path) -> MergeOutcome:
        old_files = scan_tree(old_path, self.ignore)
        new_files = scan_tree(new_path, self.ignore)

        changed: List[PathStatus] = []
        with tempfile.TemporaryDirectory(prefix="boilerplate-merge-") as tmp:
            empty = Path(tmp) / "empty"
            empty.write_bytes(b"")
            for path in sorted(set(old_files) | set(new_files)):
                status = self._apply_path(
                    root, path, old_files.get(path), new_files.get(path), empty
                )
                if status is not None:
                    logger.debug("%s: %s", path, status.value)
                    changed.append(PathStatus(path=path, status=status))

        return MergeOutcome(
            has_conflicts=any(p.status == StatusKind.CONFLICTED for p in changed),
            changed_paths=changed,
        )

    def _apply_path(
        self,
        root: Path,
        path: str,
        old: Optional[Path],
        new: Optional[Path],
        empty: Path,
    ) -> Optional[StatusKind]:
        old_b = _read(old)
        new_b = _read(new)
        if old_b == new_b:
            return None

        current = root / path
        cur_b = _read(current)

        # Added upstream
        if old_b is None:
            if cur_b is None:
                _write(current, new_b, new)
                return StatusKind.ADDED
            if cur_b == new_b:
                return None
            merged, _ = git.merge_file(current, empty, new)
            self._conflict(root, path, current, merged, None, (current, cur_b), (new, new_b))
            return StatusKind.CONFLICTED

        # Removed upstream
        if new_b is None:
            if cur_b is None:
                return None
            if cur_b == old_b:
                _remove(root, current)
                return StatusKind.DELETED
            self._conflict(root, path, current, cur_b, (old, old_b), (current, cur_b), None)
            return StatusKind.CONFLICTED

        # Changed upstream
        if cur_b is None:
            self._conflict(root, path, current, new_b, (old, old_b), None, (new, new_b))
            return StatusKind.CONFLICTED
        if cur_b == old_b:
            _write(current, new_b, new)
            return StatusKind.MODIFIED
        if cur_b == new_b:
            return None

        merged, conflicts = git.merge_file(current, old, new)
        if conflicts:
            self._conflict(root, path, current, merged, (old, old_b), (current, cur_b), (new, new_b))
            return StatusKind.CONFLICTED
        if merged == cur_b:
            return None
        _write(current, merged)
        return StatusKind.MODIFIED

    def _conflict(
        self,
        root: Path,
        path: str,
        current: Path,
        content: bytes,
        base: Optional[Tuple[Path, bytes]],
        ours: Optional[Tuple[Path, bytes]],
        theirs: Optional[Tuple[Path, bytes]],
    ) -> None:
        def stage(side: Optional[Tuple[Path, bytes]]) -> Optional[Tuple[str, bytes]]:
            if side is None:
                return None
            source, data = side
            return _file_mode(source), data

        git.record_unmerged(root, path, stage(base), stage(ours), stage(theirs))
        _write(current, content, theirs[0] if (ours is None and theirs) else None)


def force_end_state(
    pair: SnapshotPair,
    root: Path,
    outcome: MergeOutcome,
    ignore: Optional[IgnoreSpec] = None,
) -> MergeOutcome:
    """Make every boilerplate-owned path match the new snapshot exactly.

    Statuses reported by the merge are kept, except that conflicts no longer
    exist: they become modified (or deleted when the new snapshot has no such
    file) and their unmerged index entries are cleared. Paths the merge left
    alone but the reset changes are reported too.
    """
    ignore = ignore or IgnoreSpec()
    old_files = scan_tree(pair.old_path, ignore)
    new_files = scan_tree(pair.new_path, ignore)
    reported = {p.path: p.status for p in outcome.changed_paths}

    for path in sorted(set(old_files) | set(new_files)):
        current = root / path
        cur_b = _read(current)
        new = new_files.get(path)
        if new is not None:
            new_b = new.read_bytes()
            if cur_b != new_b or _file_mode(current) != _file_mode(new):
                _write(current, new_b, new)
                reported.setdefault(path, StatusKind.ADDED if cur_b is None else StatusKind.MODIFIED)
        elif cur_b is not None:
            _remove(root, current)
            reported.setdefault(path, StatusKind.DELETED)

    conflicted = [path for path, status in reported.items() if status == StatusKind.CONFLICTED]
    if conflicted:
        git.reset_index(root, conflicted)
        for path in conflicted:
            reported[path] = StatusKind.MODIFIED if path in new_files else StatusKind.DELETED

    return MergeOutcome(
        has_conflicts=False,
        changed_paths=[PathStatus(path=path, status=reported[path]) for path in sorted(reported)],
    )


def filter_snapshots(pair: SnapshotPair, ignore: IgnoreSpec, workdir: Path) -> SnapshotPair:
    """Copy both snapshots into workdir, leaving out ignored paths."""
    trees = []
    for name, tree in (("old", pair.old_path), ("new", pair.new_path)):
        dest = workdir / name
        dest.mkdir()
        for relpath, source in scan_tree(tree, ignore).items():
            target = dest / relpath
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        trees.append(dest)
    return SnapshotPair(old_path=trees[0], new_path=trees[1])


def invoke_merge(
    service: MergeService,
    pair: SnapshotPair,
    root: Path,
    reset: bool = False,
    ignore: Optional[IgnoreSpec] = None,
) -> MergeOutcome:
    """Run the merge service exactly once, then force the end state in reset mode.

    With user ignore patterns the service only sees filtered copies of the
    snapshots, so ignored paths stay untouched whatever service is used.

    Raises:
        MergeError: If the service fails
    """
    logger.info("Applying boilerplate changes to %s", root)
    try:
        with contextlib.ExitStack() as stack:
            if ignore is not None and ignore.extra:
                workdir = stack.enter_context(tempfile.TemporaryDirectory(prefix="boilerplate-filtered-"))
                pair = filter_snapshots(pair, ignore, Path(workdir))
            outcome = service.apply(pair.old_path, pair.new_path, root)
            if reset:
                outcome = force_end_state(pair, root, outcome, ignore)
    except (GitCommandError, OSError) as e:
        raise MergeError(f"Failed to apply boilerplate changes: {e}") from e
    logger.info("Merge result: %s", outcome.summary())
    return outcome
