"""Text reports produced by the update modes."""

from typing import List

from .core import ResolvedVersionPair


def format_stats(
    project_type: str,
    versions: ResolvedVersionPair,
    remote_url: str,
    codemods: List[str],
) -> str:
    """Stats-only report; field order is fixed."""
    return "\n".join([
        f"project type: {project_type}",
        f"from version: {versions.from_version}",
        f"to version: {versions.to_version}",
        f"output repo: {remote_url}",
        f"applicable codemods: {', '.join(codemods)}",
    ])
