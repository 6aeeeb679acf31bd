"""Hubhook: keep local working copies in sync with GitHub and redeploy on change.

This package provides the webhook listener, the serialized update executor, and
the git synchronization logic that brings a tracked working copy to the tip of
its branch before running the project's post-update command.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    dispatch,
    errors,
    git_wrapper,
    listener,
    runner,
    updater,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "dispatch",
    "errors",
    "git_wrapper",
    "listener",
    "runner",
    "updater",
]
