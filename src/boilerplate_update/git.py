"""Thin wrappers around the git command line.

Every function takes the directory it operates on explicitly; nothing here
depends on the process working directory.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .constants import BASE_LABEL, OURS_LABEL, THEIRS_LABEL
from .errors import GitCommandError

logger = logging.getLogger(__name__)

NULL_SHA = "0" * 40


def run_git(
    args: List[str],
    cwd: Optional[Path] = None,
    input: Optional[bytes] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run git and capture its output as bytes.

    Raises:
        GitCommandError: If check is set and git exits non-zero
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd else None,
        input=input,
        capture_output=True,
        check=False,
    )
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, result.stderr.decode(errors="replace"))
    return result


def is_work_tree(root: Path) -> bool:
    """Check whether root is inside a git work tree."""
    result = run_git(["rev-parse", "--is-inside-work-tree"], cwd=root, check=False)
    return result.returncode == 0 and result.stdout.strip() == b"true"


def status_porcelain(root: Path) -> List[str]:
    """Return `git status --porcelain` lines, including every untracked file.

    Rename detection is off so each line names a single path.
    """
    result = run_git(["-c", "status.renames=false", "status", "--porcelain", "--untracked-files=all"], cwd=root)
    return [line for line in result.stdout.decode().splitlines() if line]


def ls_remote_tags(remote_url: str) -> List[str]:
    """List tag names of a remote repository."""
    result = run_git(["ls-remote", "--tags", "--refs", remote_url])
    tags = []
    for line in result.stdout.decode().splitlines():
        _, _, ref = line.partition("\t")
        if ref.startswith("refs/tags/"):
            tags.append(ref[len("refs/tags/"):])
    return tags


def clone_tag(remote_url: str, tag: str, dest: Path) -> Path:
    """Shallow-clone a single tag into dest and drop its .git directory."""
    run_git(["clone", "--quiet", "--depth", "1", "--branch", tag, remote_url, str(dest)])
    shutil.rmtree(dest / ".git", ignore_errors=True)
    return dest


def merge_file(current: Path, base: Path, other: Path) -> Tuple[bytes, int]:
    """Three-way merge of single files with `git merge-file`.

    Returns:
        Tuple of (merged content, number of conflicts)
    """
    args = [
        "merge-file", "-p",
        "-L", OURS_LABEL, "-L", BASE_LABEL, "-L", THEIRS_LABEL,
        str(current), str(base), str(other),
    ]
    result = run_git(args, check=False)
    # Negative exit statuses (errors) surface as values above 127
    if result.returncode > 127:
        raise GitCommandError(args, result.returncode, result.stderr.decode(errors="replace"))
    return result.stdout, result.returncode


def hash_object(root: Path, content: bytes) -> str:
    """Write content to the object database and return its sha."""
    result = run_git(["hash-object", "-w", "--stdin"], cwd=root, input=content)
    return result.stdout.decode().strip()


def update_index_info(root: Path, lines: Iterable[str]) -> None:
    """Feed `git update-index --index-info` lines (mode sha stage<TAB>path)."""
    payload = "".join(f"{line}\n" for line in lines).encode()
    run_git(["update-index", "--index-info"], cwd=root, input=payload)


def record_unmerged(
    root: Path,
    path: str,
    base: Optional[Tuple[str, bytes]],
    ours: Optional[Tuple[str, bytes]],
    theirs: Optional[Tuple[str, bytes]],
) -> None:
    """Register a path as unmerged with index stages 1 (base), 2 (ours), 3 (theirs).

    Each side is a (mode, content) tuple or None when that side has no file.
    """
    lines = [f"0 {NULL_SHA}\t{path}"]
    for stage, side in ((1, base), (2, ours), (3, theirs)):
        if side is None:
            continue
        mode, content = side
        lines.append(f"{mode} {hash_object(root, content)} {stage}\t{path}")
    update_index_info(root, lines)


def reset_index(root: Path, paths: Iterable[str] = ()) -> None:
    """Unstage everything (or only paths), leaving the working tree alone."""
    paths = list(paths)
    args = ["reset", "--quiet"]
    if paths:
        args += ["--", *paths]
    run_git(args, cwd=root)
