"""Update orchestration across the operating modes.

Pipeline for a run (or reset):

    preflight -> versions -> snapshots -> merge -> conflicts -> codemods

Stats, compare and list-codemods modes stop early and never touch the
working tree. When conflicts are resolved interactively, update() returns
as soon as the resolution process is started; the remaining steps run on a
worker thread once that process exits, and their result is delivered
through the returned future.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from . import git
from .codemods import (
    CodemodRunner,
    CommandCodemodRunner,
    ManifestClient,
    RuntimeEnvironment,
    applicable_codemods,
    detect_runtime_environment,
    manifest_to_json,
)
from .config import UpdateConfig, load_update_config
from .constants import DEFAULT_MERGETOOL_COMMAND
from .conflicts import (
    ConflictResolutionProcess,
    ConflictState,
    Stream,
    detect_conflicts,
    spawn_resolution_process,
)
from .core import (
    AwaitingInteractiveResolution,
    CodemodManifest,
    CompareMode,
    Completed,
    ListCodemodsMode,
    MergeOutcome,
    ResetMode,
    ResolvedVersionPair,
    RunMode,
    StatsMode,
    UpdateOutcome,
    UpdateRequest,
    UpdateResult,
)
from .errors import (
    ConfigError,
    ConflictResolutionAbandonedError,
    SnapshotUnavailableError,
    UnresolvedConflictsError,
    UpdateError,
)
from .ignore import IgnoreSpec
from .merge import MergeService, ThreeWayMergeService, invoke_merge
from .preflight import ensure_clean_working_tree
from .reporting import format_stats
from .snapshots import GitSnapshotProvider, SnapshotCache, SnapshotProvider, installed_version, open_snapshots
from .utils import compare_url, open_url
from .versions import as_history, resolve_version_pair

logger = logging.getLogger(__name__)


@dataclass
class UpdateDeps:
    """Dependency injection container for testability."""
    snapshot_provider: SnapshotProvider
    merge_service: MergeService
    manifest_client: ManifestClient
    codemod_runner: CodemodRunner
    open_url: Callable[[str], Any] = open_url
    detect_environment: Callable[[], RuntimeEnvironment] = detect_runtime_environment
    installed_version: Callable[[str], Optional[str]] = installed_version
    mergetool_command: List[str] = field(default_factory=lambda: list(DEFAULT_MERGETOOL_COMMAND))
    resolution_streams: Tuple[Stream, Stream, Stream] = (None, None, None)

    @classmethod
    def from_config(cls, config: UpdateConfig) -> "UpdateDeps":
        """Default collaborators: git output repository, git merge, HTTP manifest."""
        cache = SnapshotCache(config.cache_dir) if config.cache_dir else None
        return cls(
            snapshot_provider=GitSnapshotProvider(cache=cache),
            merge_service=ThreeWayMergeService(),
            manifest_client=ManifestClient(),
            codemod_runner=CommandCodemodRunner(),
            mergetool_command=list(config.mergetool_command),
        )


class BoilerplateUpdater:
    """Runs update requests against one working tree.

    The working tree root is explicit; nothing depends on the process
    working directory.
    """

    def __init__(
        self,
        root: Path,
        deps: Optional[UpdateDeps] = None,
        config: Optional[UpdateConfig] = None,
    ):
        self.root = Path(root).resolve()
        self.config = config if config is not None else load_update_config(self.root)
        self.deps = deps if deps is not None else UpdateDeps.from_config(self.config)

    def _ignore_for(self, request: UpdateRequest) -> IgnoreSpec:
        return IgnoreSpec([*self.config.ignored_files, *request.ignored_files])

    # === Entry point ===

    def update(self, request: UpdateRequest) -> UpdateOutcome:
        """Dispatch the request to its mode.

        Raises:
            UpdateError: Any failure before the outcome can be returned
        """
        deps = self.deps
        mode = request.mode
        logger.info("Updating %s (%s mode)", self.root, mode.kind)

        ensure_clean_working_tree(self.root)

        if isinstance(mode, ListCodemodsMode):
            return Completed(self._list_codemods(request, deps))

        versions = self.resolve_versions(request, deps)

        if isinstance(mode, CompareMode):
            self._compare(request, versions, deps)
            return Completed(None)
        if isinstance(mode, StatsMode):
            return Completed(self._stats(request, versions, deps))
        return self._run(request, mode, versions, deps)

    # === Phases ===

    def resolve_versions(self, request: UpdateRequest, deps: UpdateDeps) -> ResolvedVersionPair:
        """Resolve the request's version specifiers against the output repository."""
        try:
            history = as_history(deps.snapshot_provider.fetch_version_history(request.remote_url))
        except (UpdateError, OSError, ValueError) as e:
            raise SnapshotUnavailableError("version history", str(e)) from e
        logger.debug("Version history for %s: %s", request.remote_url, ", ".join(map(str, history)))
        return resolve_version_pair(request.start_version, request.end_version, history)

    def _fetch_manifest(self, request: UpdateRequest, deps: UpdateDeps) -> CodemodManifest:
        if not request.codemods_url:
            raise ConfigError("A codemods URL is required for this operation")
        return deps.manifest_client.fetch(request.codemods_url)

    def _list_codemods(self, request: UpdateRequest, deps: UpdateDeps) -> UpdateResult:
        manifest = self._fetch_manifest(request, deps)
        return UpdateResult(mode=request.mode.kind, manifest=manifest_to_json(manifest))

    def _compare(self, request: UpdateRequest, versions: ResolvedVersionPair, deps: UpdateDeps) -> None:
        url = compare_url(request.remote_url, versions.from_version, versions.to_version)
        logger.info("Opening %s", url)
        deps.open_url(url)

    def _stats(self, request: UpdateRequest, versions: ResolvedVersionPair, deps: UpdateDeps) -> UpdateResult:
        manifest = self._fetch_manifest(request, deps)
        codemods = applicable_codemods(manifest, request.project_type, versions, deps.detect_environment())
        report = format_stats(request.project_type, versions, request.remote_url, codemods)
        return UpdateResult(mode=request.mode.kind, versions=versions, report=report, codemods=codemods)

    def _run(
        self,
        request: UpdateRequest,
        mode: Union[RunMode, ResetMode],
        versions: ResolvedVersionPair,
        deps: UpdateDeps,
    ) -> UpdateOutcome:

        # Fetch before merging so a bad manifest never leaves a half-applied update
        manifest = self._fetch_manifest(request, deps) if mode.run_codemods else None

        with open_snapshots(request, versions, deps.snapshot_provider, deps.installed_version) as pair:
            outcome = invoke_merge(
                deps.merge_service,
                pair,
                self.root,
                reset=isinstance(mode, ResetMode),
                ignore=self._ignore_for(request),
            )

        if detect_conflicts(outcome) == ConflictState.NO_CONFLICTS:
            return Completed(self._complete(request, versions, outcome, manifest, deps))

        if not (isinstance(mode, RunMode) and mode.resolve_conflicts):
            raise UnresolvedConflictsError(outcome.conflicted_paths)

        stdin, stdout, stderr = deps.resolution_streams
        process = spawn_resolution_process(
            self.root, deps.mergetool_command, stdin=stdin, stdout=stdout, stderr=stderr
        )
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="boilerplate-update")
        try:
            completion = executor.submit(
                self._complete_after_resolution, process, request, versions, outcome, manifest, deps
            )
        finally:
            executor.shutdown(wait=False)
        return AwaitingInteractiveResolution(process=process, completion=completion)

    def _complete_after_resolution(
        self,
        process: ConflictResolutionProcess,
        request: UpdateRequest,
        versions: ResolvedVersionPair,
        outcome: MergeOutcome,
        manifest: Optional[CodemodManifest],
        deps: UpdateDeps,
    ) -> UpdateResult:
        returncode = process.wait()
        if process.state != ConflictState.RESOLVED:
            raise ConflictResolutionAbandonedError(returncode)

        logger.info("Conflicts resolved")
        # Resolution tools stage what they resolve; leave changes unstaged
        git.reset_index(self.root)
        return self._complete(request, versions, outcome, manifest, deps)

    def _complete(
        self,
        request: UpdateRequest,
        versions: ResolvedVersionPair,
        outcome: MergeOutcome,
        manifest: Optional[CodemodManifest],
        deps: UpdateDeps,
    ) -> UpdateResult:
        codemods: List[str] = []
        if manifest is not None:
            codemods = applicable_codemods(manifest, request.project_type, versions, deps.detect_environment())
            if codemods:
                deps.codemod_runner.run(codemods, manifest, self.root)
        return UpdateResult(mode=request.mode.kind, versions=versions, merge=outcome, codemods=codemods)


def boilerplate_update(
    request: UpdateRequest,
    root: Path,
    deps: Optional[UpdateDeps] = None,
) -> UpdateOutcome:
    """Update the boilerplate of the working tree at root.

    Returns:
        Completed(result) once everything finished, or
        AwaitingInteractiveResolution(process, completion) while conflicts are
        being resolved interactively.

    Raises:
        UpdateError: Typed failures (dirty tree, unknown version, unavailable
            snapshot, unreadable manifest, unresolved conflicts, ...)

    Example:
        >>> request = UpdateRequest(
        ...     remote_url="https://github.com/org/generator-output",
        ...     project_type="app",
        ...     start_version="1.0.0",
        ... )
        >>> outcome = boilerplate_update(request, Path("."))
    """
    return BoilerplateUpdater(root, deps=deps).update(request)
