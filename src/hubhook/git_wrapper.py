import logging
from pathlib import Path

from .constants import APP_NAME, DEFAULT_GIT, DEFAULT_REMOTE_TEMPLATE
from .runner import run_command

logger = logging.getLogger(APP_NAME)


class GitSync:
    """A wrapper around the Git command-line interface for tracked working copies.

    Each method is a single git invocation run through `run_command`, scoped to the
    working directory passed in (except `clone`, which creates it). Any failure is
    raised to the caller unchanged.

    Attributes:
        git (str): The git executable to invoke.
        remote_template (str): Template used to build remote URLs from `owner/name`.
        timeout (float | None): Per-command time limit in seconds, if any.
    """

    def __init__(
        self,
        git: str = DEFAULT_GIT,
        remote_template: str = DEFAULT_REMOTE_TEMPLATE,
        timeout: float | None = None,
    ):
        """Initializes the GitSync instance.

        Args:
            git (str, optional): The git executable. Defaults to "git".
            remote_template (str, optional): The remote URL template.
                                             Defaults to the GitHub HTTPS layout.
            timeout (float | None, optional): Per-command time limit in seconds.
                                              Defaults to None.
        """
        self.git = git
        self.remote_template = remote_template
        self.timeout = timeout

    def _run(
        self, args: list[str], cwd: Path | None = None, name: str | None = None
    ) -> bytes:
        """Executes a git subcommand.

        Args:
            args (list[str]): Arguments following the git executable.
            cwd (Path | None, optional): The working directory. Defaults to None.
            name (str | None, optional): Display name for errors.
                                         Defaults to "git <subcommand>".

        Returns:
            bytes: The captured stdout of the command.
        """
        return run_command(
            self.git,
            args,
            cwd=cwd,
            name=name or f"git {args[0]}",
            timeout=self.timeout,
        )

    def remote_url(self, repo: str) -> str:
        """Builds the remote URL for a repository slug (e.g. 'owner/name')."""
        return self.remote_template.format(repo=repo)

    def clone(self, repo: str, destination: Path) -> None:
        """Clones a repository into a new directory.

        Args:
            repo (str): The remote repository slug.
            destination (Path): The directory to clone into. Must not be a
                                non-empty directory.
        """
        logger.info(f"Cloning project {repo} to {destination}")
        self._run(["clone", self.remote_url(repo), str(destination)])

    def checkout(self, path: Path, branch: str) -> None:
        """Checks out a branch in the working copy at `path`."""
        logger.info(f"Checking out branch {branch} in {path}")
        self._run(["checkout", branch], cwd=path)

    def remote_update(self, path: Path) -> None:
        """Fetches from all remotes without merging."""
        logger.info(f"Updating remotes in {path}")
        self._run(["remote", "update"], cwd=path, name="git remote update")

    def pull(self, path: Path) -> None:
        """Pulls upstream changes into the checked-out branch."""
        logger.info(f"Pulling changes in {path}")
        self._run(["pull"], cwd=path)

    def rev_parse(self, path: Path, rev: str) -> str:
        """Resolves a revision to a full SHA-1 hash.

        Unlike a lenient lookup, an unresolvable revision is an error.

        Args:
            path (Path): The working copy.
            rev (str): The revision to parse (e.g. '@', '@{u}').

        Returns:
            str: The resolved commit hash.
        """
        out = self._run(["rev-parse", rev], cwd=path)
        return out.decode("utf-8", "replace").strip()

    def revisions_differ(self, path: Path) -> bool:
        """Compares the local branch tip against its upstream tracking tip.

        Args:
            path (Path): The working copy.

        Returns:
            bool: True if the local and upstream tips point at different commits.

        Raises:
            CommandFailed: If either tip cannot be resolved (e.g. no upstream).
        """
        local = self.rev_parse(path, "@")
        remote = self.rev_parse(path, "@{u}")
        logger.debug(f"{path}: local {local}, upstream {remote}")
        return local != remote
