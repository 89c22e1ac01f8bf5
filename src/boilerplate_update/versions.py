"""Version resolution against the boilerplate's version history.

Specifiers are either exact versions ("0.0.1", "v0.0.1") or npm-style
ranges ("< 0.0.2", "0.0.*", "^1.2", "~1.2.3", ">=1 <2"). A range resolves
to the greatest version in the history that satisfies it.
"""

import logging
from typing import Iterable, List, Optional

from semantic_version import NpmSpec, Version

from .constants import TAG_PREFIX
from .core import ResolvedVersionPair, npm_range
from .errors import VersionNotFoundError, VersionOrderError

logger = logging.getLogger(__name__)

LATEST = "latest"


def parse_version_history(tags: Iterable[str]) -> List[Version]:
    """Turn output repository tags into a sorted, de-duplicated version list.

    Tags that are not "v" + semver are ignored.
    """
    versions = set()
    for tag in tags:
        if not tag.startswith(TAG_PREFIX):
            continue
        try:
            versions.add(Version(tag[len(TAG_PREFIX):]))
        except ValueError:
            logger.debug("Ignoring non-semver tag %s", tag)
    return sorted(versions)


def as_history(versions: Iterable[str]) -> List[Version]:
    """Sorted, de-duplicated history from plain version strings."""
    return sorted({Version(v) for v in versions})


def _parse_exact(specifier: str) -> Optional[Version]:
    candidate = specifier.strip()
    if candidate.startswith(TAG_PREFIX):
        candidate = candidate[len(TAG_PREFIX):]
    try:
        return Version(candidate)
    except ValueError:
        return None


def parse_range(specifier: str) -> NpmSpec:
    """Parse an npm-style range expression.

    Raises:
        VersionNotFoundError: If the expression is not a valid range
    """
    try:
        return npm_range(specifier)
    except ValueError as e:
        raise VersionNotFoundError(specifier, f"Invalid version specifier '{specifier}': {e}") from e


def resolve_version(specifier: str, history: List[Version]) -> Version:
    """Resolve one specifier against the history.

    Raises:
        VersionNotFoundError: If nothing in the history satisfies it
    """
    if not history:
        raise VersionNotFoundError(specifier, f"No versions available to resolve '{specifier}'")

    if specifier.strip() == LATEST:
        return history[-1]

    exact = _parse_exact(specifier)
    if exact is not None:
        if exact not in history:
            raise VersionNotFoundError(specifier)
        return exact

    selected = parse_range(specifier).select(history)
    if selected is None:
        raise VersionNotFoundError(specifier)
    return selected


def resolve_version_pair(
    start: str,
    end: Optional[str],
    history: List[Version],
) -> ResolvedVersionPair:
    """Resolve start/end specifiers; a missing end means the latest version.

    Raises:
        VersionNotFoundError: If either specifier cannot be satisfied
        VersionOrderError: If start resolves after end
    """
    from_version = resolve_version(start, history)
    to_version = resolve_version(end or LATEST, history)

    if from_version > to_version:
        raise VersionOrderError(str(from_version), str(to_version))

    logger.debug("Resolved %s...%s to %s...%s", start, end or LATEST, from_version, to_version)
    return ResolvedVersionPair(from_version=str(from_version), to_version=str(to_version))
