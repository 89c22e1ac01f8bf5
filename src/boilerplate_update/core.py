"""Core data models for boilerplate-update.

Operating Modes:
----------------
An update request carries exactly one mode. Each mode is its own model with
only the options that make sense for it, so combinations such as "reset and
compare" or "stats with conflict resolution" cannot be constructed:

- RunMode: full pipeline (merge, conflicts, codemods)
- ResetMode: full pipeline, boilerplate files forced to the end snapshot
- CompareMode: open a comparison view between the two versions
- StatsMode: report versions and applicable codemods, never mutate
- ListCodemodsMode: return the codemod manifest
"""

import logging
import re
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator
from semantic_version import NpmSpec, Version

if TYPE_CHECKING:
    from .conflicts import ConflictResolutionProcess

logger = logging.getLogger(__name__)

# npm accepts "< 1.2.3"; NpmSpec wants the operator glued to the version
_OPERATOR_GAP = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")


def npm_range(expression: str) -> NpmSpec:
    """Parse an npm range expression, allowing blanks after operators.

    Raises:
        ValueError: If the expression is not a valid range
    """
    return NpmSpec(_OPERATOR_GAP.sub(r"\1", expression.strip()))


# ============= Operating Modes =============

class RunMode(BaseModel):
    """Normal update run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["run"] = "run"
    resolve_conflicts: bool = False
    run_codemods: bool = False


class ResetMode(BaseModel):
    """Update run that forces boilerplate files to the end snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["reset"] = "reset"
    run_codemods: bool = False


class CompareMode(BaseModel):
    """Open the comparison view only."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["compare"] = "compare"


class StatsMode(BaseModel):
    """Report only."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["stats"] = "stats"


class ListCodemodsMode(BaseModel):
    """Return the full codemod manifest."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["list_codemods"] = "list_codemods"


Mode = Union[RunMode, ResetMode, CompareMode, StatsMode, ListCodemodsMode]


# ============= Request =============

class ProjectOptions(BaseModel):
    """Options handed to a custom-diff project factory for one side."""

    project_name: str
    package_name: str
    version: str
    side: Literal["start", "end"]
    options: Dict[str, Any] = Field(default_factory=dict)


ProjectFactory = Callable[[ProjectOptions], Union[str, Path]]


class CustomDiffOptions(BaseModel):
    """Build the two snapshots with caller-supplied factories."""

    model_config = ConfigDict(frozen=True)

    project_name: str
    package_name: str
    create_project_from_cache: ProjectFactory
    create_project_from_remote: ProjectFactory
    start_options: Dict[str, Any] = Field(default_factory=dict)
    end_options: Dict[str, Any] = Field(default_factory=dict)


class UpdateRequest(BaseModel):
    """Immutable input of a single update invocation."""

    model_config = ConfigDict(frozen=True)

    remote_url: str
    project_type: str
    codemods_url: Optional[str] = None
    start_version: str
    end_version: Optional[str] = None  # None means latest
    mode: Mode = Field(default_factory=RunMode, discriminator="kind")
    custom_diff: Optional[CustomDiffOptions] = None
    ignored_files: List[str] = Field(default_factory=list)

    @classmethod
    def from_flags(
        cls,
        *,
        resolve_conflicts: bool = False,
        compare_only: bool = False,
        reset: bool = False,
        stats_only: bool = False,
        run_codemods: bool = False,
        list_codemods: bool = False,
        **fields: Any,
    ) -> "UpdateRequest":
        """Build a request from boolean mode flags.

        Precedence: list_codemods > stats_only > compare_only > reset > run.
        resolve_conflicts only applies to a normal run; other modes ignore it.
        """
        mode: Mode
        if list_codemods:
            mode = ListCodemodsMode()
        elif stats_only:
            mode = StatsMode()
        elif compare_only:
            mode = CompareMode()
        elif reset:
            mode = ResetMode(run_codemods=run_codemods)
        else:
            mode = RunMode(resolve_conflicts=resolve_conflicts, run_codemods=run_codemods)

        if resolve_conflicts and not isinstance(mode, RunMode):
            logger.debug("Ignoring resolve_conflicts in %s mode", mode.kind)

        return cls(mode=mode, **fields)


# ============= Versions & Snapshots =============

class ResolvedVersionPair(BaseModel):
    """Concrete versions after specifier resolution (from <= to)."""

    model_config = ConfigDict(frozen=True)

    from_version: str
    to_version: str


class SnapshotPair(BaseModel):
    """Locations of the two materialized boilerplate trees."""

    model_config = ConfigDict(frozen=True)

    old_path: Path
    new_path: Path


# ============= Merge =============

class StatusKind(str, Enum):
    """Status of a path after the merge."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    CONFLICTED = "conflicted"


class PathStatus(BaseModel):
    """Single path touched by the merge."""

    path: str
    status: StatusKind


class MergeOutcome(BaseModel):
    """Result of applying the boilerplate delta to the working tree."""

    has_conflicts: bool = False
    changed_paths: List[PathStatus] = Field(default_factory=list)

    @property
    def conflicted_paths(self) -> List[str]:
        """Paths left with conflicts."""
        return [p.path for p in self.changed_paths if p.status == StatusKind.CONFLICTED]

    def summary(self) -> str:
        """Get human-readable summary."""
        if not self.changed_paths:
            return "No changes"
        counts: Dict[StatusKind, int] = {}
        for p in self.changed_paths:
            counts[p.status] = counts.get(p.status, 0) + 1
        return ", ".join(f"{counts[kind]} {kind.value}" for kind in StatusKind if kind in counts)


# ============= Codemods =============

class CodemodManifestEntry(BaseModel):
    """Applicability rules and payload of one codemod."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: str  # minimum boilerplate version the codemod targets
    version_range: Optional[str] = Field(default=None, alias="versionRange")
    project_options: List[str] = Field(default_factory=list, alias="projectOptions")
    runtime_version: Optional[str] = Field(default=None, alias="runtimeVersion")
    excluded_runtime_modes: List[str] = Field(default_factory=list, alias="excludedRuntimeModes")
    commands: List[str] = Field(default_factory=list)
    script: Optional[str] = None

    @field_validator("version", "runtime_version")
    @classmethod
    def validate_version(cls, v: Optional[str]) -> Optional[str]:
        """Versions must be (possibly partial) semver, e.g. "3.0" or "3.0.1"."""
        if v is not None:
            Version.coerce(v)
        return v

    @field_validator("version_range")
    @classmethod
    def validate_version_range(cls, v: Optional[str]) -> Optional[str]:
        """Ranges use npm syntax."""
        if v is not None:
            npm_range(v)
        return v


CodemodManifest = Dict[str, CodemodManifestEntry]


# ============= Results =============

class UpdateResult(BaseModel):
    """Structured result of a completed update."""

    mode: str
    versions: Optional[ResolvedVersionPair] = None
    merge: Optional[MergeOutcome] = None
    report: Optional[str] = None  # stats mode
    manifest: Optional[str] = None  # list-codemods mode
    codemods: List[str] = Field(default_factory=list)


@dataclass
class Completed:
    """The update finished; result is None for compare mode."""

    result: Optional[UpdateResult]


@dataclass
class AwaitingInteractiveResolution:
    """Conflicts are being resolved interactively.

    ``completion`` resolves once the process exits and the remaining steps
    (unstaging, codemods) have run. It fails if resolution is abandoned.
    """

    process: "ConflictResolutionProcess"
    completion: "Future[UpdateResult]"


UpdateOutcome = Union[Completed, AwaitingInteractiveResolution]
