import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config import Config, Project
from .constants import APP_NAME
from .errors import InvalidPath
from .git_wrapper import GitSync
from .runner import run_command

logger = logging.getLogger(APP_NAME)


@dataclass
class UpdateResult:
    """Outcome of one successful project update.

    Attributes:
        project_id (str): The updated project.
        path (Path): The project's working directory.
        changed (bool): Whether new commits arrived (or the copy was freshly cloned).
        command_ran (bool): Whether the post-update command was executed.
    """

    project_id: str
    path: Path
    changed: bool
    command_ran: bool


def project_path(config: Config, project: Project) -> Path:
    """Computes a project's working directory and checks it can be passed to git.

    Args:
        config (Config): The configuration snapshot.
        project (Project): The project.

    Returns:
        Path: `location/<project.id>`.

    Raises:
        InvalidPath: If the path contains a NUL byte or cannot be encoded with the
                     filesystem encoding.
    """
    path = config.project_path(project)
    text = str(path)
    if "\x00" in text:
        raise InvalidPath(text)
    try:
        os.fsencode(text)
    except UnicodeEncodeError as e:
        raise InvalidPath(text) from e
    return path


def sync_repository(git: GitSync, path: Path, project: Project) -> bool:
    """Brings the working copy at `path` to the tip of the project's branch.

    A missing working copy is cloned and always counts as changed. An existing one
    is checked out, refreshed, compared against upstream and then pulled; the result
    reflects the comparison made before the pull.

    Args:
        git (GitSync): The git wrapper.
        path (Path): The project's working directory.
        project (Project): The project being updated.

    Returns:
        bool: True if the post-update command should run.
    """
    if path.exists():
        logger.info("Local repo exists: updating")
        git.checkout(path, project.branch)
        git.remote_update(path)
        changed = git.revisions_differ(path)
        git.pull(path)
        return changed

    logger.info("No local repo found: cloning")
    git.clone(project.repo, path)
    git.checkout(path, project.branch)
    return True


def run_update_command(
    project: Project, path: Path, timeout: float | None = None
) -> bytes:
    """Runs the project's post-update command inside its working directory."""
    logger.info(f"Running update command {project.command} in {path}")
    return run_command(project.command, [], cwd=path, timeout=timeout)


def update_project(
    config: Config, project: Project, git: GitSync | None = None
) -> UpdateResult:
    """Synchronizes a project and runs its post-update command if anything changed.

    The first failing step aborts the update; its error propagates unchanged.

    Args:
        config (Config): The configuration snapshot.
        project (Project): The project to update.
        git (GitSync | None, optional): The git wrapper. Defaults to one built
                                        from `config`.

    Returns:
        UpdateResult: What the update did.
    """
    if git is None:
        git = GitSync(config.git, config.remote_template, config.command_timeout)

    path = project_path(config, project)
    changed = sync_repository(git, path, project)

    if not changed:
        logger.info("No changes in repository. Skipping update command.")
        return UpdateResult(project.id, path, changed=False, command_ran=False)

    run_update_command(project, path, config.command_timeout)
    logger.info(f"Repository {project.repo} updated successfully")
    return UpdateResult(project.id, path, changed=True, command_ran=True)
