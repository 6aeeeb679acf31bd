import os
from pathlib import Path

"""Global constants and default path definitions for Hubhook.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default Git remote layout used across the
application.
"""

# --- Identity ---
APP_NAME = "hubhook"
"""str: The human-readable application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "hubhook"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The default file path for the daemon process logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/hubhook"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The default configuration file path."""

# --- Git / Server Constants ---
DEFAULT_GIT = "git"
"""str: The git executable used when the configuration does not name one."""

DEFAULT_REMOTE_TEMPLATE = "https://github.com/{repo}.git"
"""str: Remote URL template; `{repo}` is replaced with the project's `owner/name`."""

DEFAULT_SERVER = "127.0.0.1:8080"
"""str: The default HOST:PORT the webhook listener binds to."""

DEFAULT_MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Max bytes for the daemon log before rotation."""

INVALID_TEXT = "[invalid string]"
"""str: Placeholder for captured output that is not valid UTF-8."""
