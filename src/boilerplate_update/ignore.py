"""Gitignore-style matching for paths the update must not touch."""

from typing import Iterable

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern


# Default patterns to always ignore
DEFAULTS = [
    # Version control
    ".git/",
]


class IgnoreSpec:
    """Manages gitignore-style patterns for boilerplate path exclusion."""

    def __init__(self, extra: Iterable[str] = ()):
        """Initialize ignore spec with default and custom patterns.

        Args:
            extra: Additional patterns, e.g. ignored_files from the request
        """
        self.extra = []
        for line in extra:
            line = line.strip()
            if line and not line.startswith("#"):
                self.extra.append(line)

        self.spec = PathSpec.from_lines(GitWildMatchPattern, DEFAULTS + self.extra)

    def is_ignored(self, relpath: str) -> bool:
        """Check if a tree-relative POSIX path should be ignored."""
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be traversed during scanning.

        Args:
            dirpath: Tree-relative directory path in POSIX format

        Returns:
            True if the directory should be traversed
        """
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)
