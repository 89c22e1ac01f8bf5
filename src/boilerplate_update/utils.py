"""Utility functions for boilerplate-update."""

import logging
import webbrowser

from .constants import TAG_PREFIX

logger = logging.getLogger(__name__)


def compare_url(remote_url: str, from_version: str, to_version: str) -> str:
    """Comparison view URL between two tagged versions of the output repository."""
    return f"{remote_url.rstrip('/')}/compare/{TAG_PREFIX}{from_version}...{TAG_PREFIX}{to_version}"


def open_url(url: str) -> bool:
    """Open a URL in the user's browser."""
    logger.debug("Opening %s", url)
    return webbrowser.open(url)
