import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME, INVALID_TEXT
from .errors import CommandFailed, CommandLaunchFailed, CommandTimedOut

logger = logging.getLogger(APP_NAME)


def decode_output(data: bytes | None) -> str:
    """Decodes captured process output, substituting a placeholder if it is not UTF-8.

    Args:
        data (bytes | None): The raw captured stream.

    Returns:
        str: The decoded text, or `INVALID_TEXT` when decoding fails.
    """
    if not data:
        return ""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return INVALID_TEXT


def run_command(
    program: str,
    args: list[str],
    cwd: Path | None = None,
    name: str | None = None,
    timeout: float | None = None,
) -> bytes:
    """Executes an external program and classifies its outcome.

    The child gets no standard input; both output streams are captured.

    Args:
        program (str): The program name or path to execute.
        args (list[str]): Arguments passed to the program.
        cwd (Path | None, optional): Working directory for the child process.
                                     Defaults to the current directory.
        name (str | None, optional): Display name used in errors and logs.
                                     Defaults to `program`.
        timeout (float | None, optional): Seconds before the child is killed.
                                          Defaults to None (wait indefinitely).

    Returns:
        bytes: The captured standard output of a successful run.

    Raises:
        CommandFailed: If the program exits with a non-zero status.
        CommandTimedOut: If the program exceeds `timeout`.
        CommandLaunchFailed: If the program could not be started.
    """
    display = name or program
    logger.debug(f"exec: {display} {args} (cwd={cwd})")
    try:
        res = subprocess.run(
            [program, *args],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimedOut(display, e.timeout, decode_output(e.stderr)) from e
    except OSError as e:
        raise CommandLaunchFailed(display, e) from e

    if res.returncode != 0:
        raise CommandFailed(display, res.returncode, decode_output(res.stderr))
    return res.stdout
