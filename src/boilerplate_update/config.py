"""Project configuration helpers."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .constants import CONFIG_FILE, DEFAULT_MERGETOOL_COMMAND
from .errors import ConfigError


@dataclass
class UpdateConfig:
    """Defaults read from .boilerplate-update.yaml at the working tree root."""

    remote_url: Optional[str] = None
    codemods_url: Optional[str] = None
    project_type: Optional[str] = None
    ignored_files: List[str] = field(default_factory=list)
    mergetool_command: List[str] = field(default_factory=lambda: list(DEFAULT_MERGETOOL_COMMAND))
    cache_dir: Optional[Path] = None


def load_update_config(root: Path) -> UpdateConfig:
    """Load configuration from .boilerplate-update.yaml if present."""

    cfg_path = root / CONFIG_FILE
    if not cfg_path.exists():
        return UpdateConfig()

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{CONFIG_FILE} is malformed: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILE} must contain a mapping")

    mergetool = data.get("mergetool_command", DEFAULT_MERGETOOL_COMMAND)
    if isinstance(mergetool, str):
        mergetool = mergetool.split()

    cache_dir = data.get("cache_dir")
    return UpdateConfig(
        remote_url=data.get("remote_url"),
        codemods_url=data.get("codemods_url"),
        project_type=data.get("project_type"),
        ignored_files=list(data.get("ignored_files", [])),
        mergetool_command=list(mergetool),
        cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
    )
