"""Failure conditions raised while processing a single repository update.

Every per-update failure derives from `UpdateError`, which the executor loop
catches, logs and moves past. `ConfigError` is the only startup-time failure
and is fatal to the process.
"""

from pathlib import Path


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is unusable."""


class UpdateError(RuntimeError):
    """Base class for errors that abort one repository update."""


class InvalidRepository(UpdateError):
    """Raised when a queued identifier does not match any configured project."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"No repository found for '{identifier}'")


class InvalidPath(UpdateError):
    """Raised when a working-directory path cannot be passed to a subprocess."""

    def __init__(self, path: Path | str):
        self.path = path
        super().__init__(f"Invalid project path: {path!r}")


class CommandFailed(UpdateError):
    """Raised when a subprocess exits with a non-zero status.

    Attributes:
        command (str): Display name of the command (e.g. 'git pull').
        status (int): The process exit status.
        stderr (str): The captured standard error, decoded as text.
    """

    def __init__(self, command: str, status: int, stderr: str):
        self.command = command
        self.status = status
        self.stderr = stderr
        super().__init__(f"Command {command} exited with status {status}: {stderr}")


class CommandTimedOut(CommandFailed):
    """Raised when a subprocess is killed after exceeding its time limit."""

    def __init__(self, command: str, timeout: float, stderr: str = ""):
        self.timeout = timeout
        # Negative status mirrors subprocess' convention for a child killed by SIGKILL.
        super().__init__(command, -9, stderr)

    def __str__(self) -> str:
        return f"Command {self.command} timed out after {self.timeout:g}s"


class CommandLaunchFailed(UpdateError):
    """Raised when a subprocess could not be started at all (e.g. missing binary)."""

    def __init__(self, command: str, cause: OSError):
        self.command = command
        self.cause = cause
        super().__init__(f"Could not run {command}: {cause}")
