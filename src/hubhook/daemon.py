import logging
import sys
import threading
from logging.handlers import RotatingFileHandler

from .config import Config
from .constants import APP_NAME
from .dispatch import CLOSED, DispatchQueue
from .errors import InvalidRepository, UpdateError
from .git_wrapper import GitSync
from .updater import UpdateResult, update_project

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class Executor:
    """The single consumer of the dispatch queue.

    Updates run strictly one at a time, in arrival order, on one dedicated thread.
    A failed update is logged and never stops the loop; only closing the queue does.

    Attributes:
        config (Config): The configuration snapshot, never mutated.
        queue (DispatchQueue): The queue to consume.
        git (GitSync): The git wrapper shared by every update.
    """

    def __init__(
        self, config: Config, queue: DispatchQueue, git: GitSync | None = None
    ):
        self.config = config
        self.queue = queue
        self.git = git or GitSync(
            config.git, config.remote_template, config.command_timeout
        )
        self._thread: threading.Thread | None = None

    def update(self, identifier: str) -> UpdateResult:
        """Resolves an identifier and updates the matching project.

        Raises:
            InvalidRepository: If no project matches `identifier`.
            UpdateError: If any step of the update fails.
        """
        project = self.config.get_project(identifier)
        if project is None:
            raise InvalidRepository(identifier)
        return update_project(self.config, project, self.git)

    def process(self, identifier: str) -> UpdateResult | None:
        """Processes one queued identifier, logging rather than raising failures.

        Args:
            identifier (str): The repository identifier taken from the queue.

        Returns:
            UpdateResult | None: The result, or None if the update failed.
        """
        try:
            return self.update(identifier)
        except UpdateError as e:
            logger.error(f"Failed to update repository {identifier}: {e}")
        except Exception:
            logger.exception(f"LOOP ERROR {identifier}")
        return None

    def run(self) -> None:
        """Consumes the queue until it is closed and drained."""
        logger.info("Executor started")
        while True:
            item = self.queue.get()
            if item is CLOSED:
                break
            self.process(item)
        logger.info("Executor stopped: dispatch queue closed")

    def start(self) -> threading.Thread:
        """Runs the loop on a dedicated background thread."""
        self._thread = threading.Thread(
            target=self.run, name=f"{APP_NAME}-executor", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> bool:
        """Closes the queue and waits for the executor to drain it.

        Updates queued before the close still run, including their commands.

        Args:
            timeout (float | None, optional): Seconds to wait for the thread.
                                              Defaults to forever.

        Returns:
            bool: True if the executor thread has exited.
        """
        self.queue.close()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()


def setup_logging(interactive: bool, config: Config | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr and
                            to a rotating log file.
        config (Config | None, optional): Supplies the log file location and
                                          rotation size. Defaults to None.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Always log to a stream (stderr is captured by systemd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive and config is not None:
        log_file = config.log.file
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=config.log.max_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
