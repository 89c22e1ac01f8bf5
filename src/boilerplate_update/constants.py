"""Constants for boilerplate-update."""

# Project configuration file (at the working tree root)
CONFIG_FILE = ".boilerplate-update.yaml"

# Output repository tags are "v" + semver
TAG_PREFIX = "v"

# Interactive conflict resolution
DEFAULT_MERGETOOL_COMMAND = ["git", "mergetool"]

# Merge conflict marker labels
OURS_LABEL = "ours"
BASE_LABEL = "base"
THEIRS_LABEL = "theirs"

# Environment variables
RUNTIME_VERSION_ENV = "BOILERPLATE_UPDATE_RUNTIME_VERSION"
RUNTIME_MODES_ENV = "BOILERPLATE_UPDATE_RUNTIME_MODES"
CACHE_DIR_ENV = "BOILERPLATE_UPDATE_CACHE_DIR"
