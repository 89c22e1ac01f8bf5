"""Custom exceptions for boilerplate-update.

This module defines typed exceptions for better error handling and clearer
error messages throughout the application.
"""

from typing import Iterable, Optional


CLEAN_WORKING_DIRECTORY_MESSAGE = "You must start with a clean working directory"


class UpdateError(RuntimeError):
    """Base class for all boilerplate-update errors."""
    pass


class GitCommandError(UpdateError):
    """A git subprocess exited with an error."""

    def __init__(self, args: Iterable[str], returncode: int, stderr: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(self.args_list)} failed: {detail}")


# Precondition Errors
class PreconditionError(UpdateError):
    """Base class for working tree precondition failures."""
    pass


class NotAGitRepositoryError(PreconditionError):
    """Working tree root is not inside a git work tree."""

    def __init__(self, root: str):
        self.root = root
        super().__init__(f"{root} is not a git repository")


class DirtyWorkingTreeError(PreconditionError):
    """Working tree has tracked or untracked changes."""

    def __init__(self, paths: Iterable[str] = (), message: Optional[str] = None):
        self.paths = list(paths)
        super().__init__(message or CLEAN_WORKING_DIRECTORY_MESSAGE)


class UnresolvedConflictsError(DirtyWorkingTreeError):
    """Merge left conflicts and interactive resolution was not requested."""

    def __init__(self, paths: Iterable[str]):
        paths = list(paths)
        file_list = ", ".join(paths[:3])
        if len(paths) > 3:
            file_list += f" and {len(paths) - 3} more"
        super().__init__(
            paths,
            f"{CLEAN_WORKING_DIRECTORY_MESSAGE}. "
            f"The update left conflicts in: {file_list}. "
            f"Resolve them (or rerun with --resolve-conflicts) and commit before updating again."
        )


# Version Errors
class VersionNotFoundError(UpdateError):
    """No version in the boilerplate history satisfies a specifier."""

    def __init__(self, specifier: str, message: Optional[str] = None):
        self.specifier = specifier
        super().__init__(message or f"No version found matching '{specifier}'")


class VersionOrderError(VersionNotFoundError):
    """Start version resolves after the end version."""

    def __init__(self, from_version: str, to_version: str):
        self.from_version = from_version
        self.to_version = to_version
        super().__init__(
            f"{from_version}...{to_version}",
            f"Start version {from_version} is newer than end version {to_version}"
        )


# Snapshot Errors
class SnapshotUnavailableError(UpdateError):
    """A boilerplate snapshot (or the version history) could not be acquired."""

    def __init__(self, what: str, reason: str):
        self.what = what
        self.reason = reason
        super().__init__(f"Could not acquire {what}: {reason}")


# Manifest Errors
class ManifestFetchError(UpdateError):
    """Codemod manifest is unreachable or malformed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not load codemod manifest from {url}: {reason}")


# Merge Errors
class MergeError(UpdateError):
    """The merge service failed to apply the boilerplate delta."""
    pass


class ConflictResolutionAbandonedError(UpdateError):
    """Interactive conflict resolution exited without completing."""

    def __init__(self, returncode: Optional[int]):
        self.returncode = returncode
        super().__init__(
            f"Conflict resolution did not complete (exit status {returncode}). "
            f"The working tree was left as is for manual inspection."
        )


# Codemod Errors
class CodemodError(UpdateError):
    """A codemod failed to run."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        super().__init__(f"Codemod '{identifier}' failed: {reason}")


# Configuration Errors
class ConfigError(UpdateError):
    """Invalid configuration or request."""
    pass
