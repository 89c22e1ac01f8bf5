"""Keep generated boilerplate in sync with newer generator output."""

from .core import (
    AwaitingInteractiveResolution,
    CompareMode,
    Completed,
    CustomDiffOptions,
    ListCodemodsMode,
    MergeOutcome,
    ProjectOptions,
    ResetMode,
    RunMode,
    StatsMode,
    UpdateRequest,
    UpdateResult,
)
from .orchestrator import BoilerplateUpdater, UpdateDeps, boilerplate_update

__all__ = [
    "AwaitingInteractiveResolution",
    "BoilerplateUpdater",
    "CompareMode",
    "Completed",
    "CustomDiffOptions",
    "ListCodemodsMode",
    "MergeOutcome",
    "ProjectOptions",
    "ResetMode",
    "RunMode",
    "StatsMode",
    "UpdateDeps",
    "UpdateRequest",
    "UpdateResult",
    "boilerplate_update",
]
