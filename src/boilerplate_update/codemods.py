"""Codemod manifest loading, applicability and execution.

The manifest is a JSON object mapping codemod identifiers to entries:

    {
      "commands-test-codemod": {
        "version": "0.0.1",
        "projectOptions": ["test-project"],
        "commands": ["python -m my_codemod ."]
      },
      "script-test-codemod": {
        "version": "0.0.1",
        "projectOptions": ["test-project"],
        "runtimeVersion": "3.11",
        "excludedRuntimeModes": ["lts"],
        "script": "https://example.com/codemod.py"
      }
    }

It is fetched fresh on every run. Applicability depends on the project type,
the target boilerplate version and the runtime environment, which is
detected when applicability is resolved.
"""

import json
import logging
import os
import platform
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, List, Mapping, Optional, Protocol

import requests
from pydantic import ValidationError
from semantic_version import Version

from .constants import RUNTIME_MODES_ENV, RUNTIME_VERSION_ENV
from .core import CodemodManifest, CodemodManifestEntry, ResolvedVersionPair, npm_range
from .errors import CodemodError, ConfigError, ManifestFetchError

logger = logging.getLogger(__name__)


# ============= Runtime Environment =============

@dataclass(frozen=True)
class RuntimeEnvironment:
    """Runtime the codemods would execute under."""
    version: str
    modes: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        try:
            Version.coerce(self.version)
        except ValueError as e:
            raise ConfigError(
                f"Invalid runtime version '{self.version}' (set {RUNTIME_VERSION_ENV} to e.g. 3.11): {e}"
            ) from e


def detect_runtime_environment(environ: Optional[Mapping[str, str]] = None) -> RuntimeEnvironment:
    """Detect the runtime version and active runtime modes.

    BOILERPLATE_UPDATE_RUNTIME_VERSION overrides the interpreter version;
    BOILERPLATE_UPDATE_RUNTIME_MODES is a comma-separated list (e.g. "lts").

    Raises:
        ConfigError: If the version override is not a version
    """
    environ = os.environ if environ is None else environ
    version = environ.get(RUNTIME_VERSION_ENV) or platform.python_version()
    modes = frozenset(
        m.strip() for m in environ.get(RUNTIME_MODES_ENV, "").split(",") if m.strip()
    )
    return RuntimeEnvironment(version=version, modes=modes)


# ============= Manifest =============

def parse_manifest(data: Any, url: str) -> CodemodManifest:
    """Validate raw manifest JSON, keeping declaration order.

    Raises:
        ManifestFetchError: If the manifest is malformed
    """
    if not isinstance(data, dict):
        raise ManifestFetchError(url, "manifest must be a JSON object")

    manifest: CodemodManifest = {}
    for identifier, raw in data.items():
        try:
            manifest[identifier] = CodemodManifestEntry.model_validate(raw)
        except ValidationError as e:
            raise ManifestFetchError(url, f"invalid entry '{identifier}': {e}") from e
    return manifest


def manifest_to_json(manifest: CodemodManifest) -> str:
    """Serialize the manifest with its original camelCase keys."""
    return json.dumps(
        {
            identifier: entry.model_dump(by_alias=True, exclude_unset=True)
            for identifier, entry in manifest.items()
        },
        indent=2,
    )


class ManifestClient:
    """Fetches the codemod manifest over HTTP. No caching, no retries."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str) -> CodemodManifest:
        """Fetch and validate the manifest.

        Raises:
            ManifestFetchError: If it is unreachable or malformed
        """
        logger.debug("Fetching codemod manifest %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ManifestFetchError(url, str(e)) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ManifestFetchError(url, f"invalid JSON: {e}") from e

        return parse_manifest(data, url)


# ============= Applicability =============

def is_applicable(
    entry: CodemodManifestEntry,
    project_type: str,
    versions: ResolvedVersionPair,
    environment: RuntimeEnvironment,
) -> bool:
    """Check one manifest entry against the project, versions and runtime."""
    if project_type not in entry.project_options:
        return False

    target = Version(versions.to_version)
    if target < Version.coerce(entry.version):
        return False
    if entry.version_range and target not in npm_range(entry.version_range):
        return False

    if entry.runtime_version:
        if Version.coerce(environment.version) < Version.coerce(entry.runtime_version):
            return False
    if environment.modes & set(entry.excluded_runtime_modes):
        return False

    return True


def applicable_codemods(
    manifest: CodemodManifest,
    project_type: str,
    versions: ResolvedVersionPair,
    environment: Optional[RuntimeEnvironment] = None,
) -> List[str]:
    """Identifiers of applicable codemods, in manifest declaration order."""
    environment = environment or detect_runtime_environment()
    applicable = [
        identifier
        for identifier, entry in manifest.items()
        if is_applicable(entry, project_type, versions, environment)
    ]
    logger.debug("Applicable codemods for %s@%s: %s", project_type, versions.to_version, applicable)
    return applicable


# ============= Execution =============

class CodemodRunner(Protocol):
    """External codemod execution engine."""

    def run(self, identifiers: List[str], manifest: CodemodManifest, root: Path) -> None:
        """Run the given codemods against the working tree at root."""
        ...


class CommandCodemodRunner:
    """Runs each codemod's declared commands inside the working tree."""

    def run(self, identifiers: List[str], manifest: CodemodManifest, root: Path) -> None:
        for identifier in identifiers:
            entry = manifest[identifier]
            if not entry.commands:
                logger.warning("Codemod %s declares no commands; skipping", identifier)
                continue
            for command in entry.commands:
                logger.info("Running codemod %s: %s", identifier, command)
                try:
                    subprocess.run(shlex.split(command), cwd=str(root), check=True)
                except subprocess.CalledProcessError as e:
                    raise CodemodError(identifier, f"'{command}' exited with status {e.returncode}") from e
                except OSError as e:
                    raise CodemodError(identifier, f"'{command}' could not start: {e}") from e
