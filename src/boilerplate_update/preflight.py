"""Preflight checks run before an update touches anything.

The working tree must be pristine relative to its last commit: no staged,
unstaged or untracked changes. This runs before version resolution so a
dirty tree fails fast without network calls.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from . import git
from .errors import DirtyWorkingTreeError, NotAGitRepositoryError


@dataclass
class WorkingTreeStatus:
    """Result of inspecting the working tree."""
    root: Path
    entries: List[str] = field(default_factory=list)  # porcelain status lines

    @property
    def is_clean(self) -> bool:
        """True if there is nothing to commit and nothing untracked."""
        return not self.entries

    @property
    def paths(self) -> List[str]:
        """Paths named by the status entries."""
        return [line[3:] for line in self.entries]


def inspect_working_tree(root: Path) -> WorkingTreeStatus:
    """Collect the status of the working tree at root.

    Raises:
        NotAGitRepositoryError: If root is not a git work tree
    """
    if not git.is_work_tree(root):
        raise NotAGitRepositoryError(str(root))
    return WorkingTreeStatus(root=root, entries=git.status_porcelain(root))


def ensure_clean_working_tree(root: Path) -> WorkingTreeStatus:
    """Fail with DirtyWorkingTreeError unless the working tree is clean.

    Raises:
        NotAGitRepositoryError: If root is not a git work tree
        DirtyWorkingTreeError: If any tracked or untracked change exists
    """
    status = inspect_working_tree(root)
    if not status.is_clean:
        raise DirtyWorkingTreeError(status.paths)
    return status
