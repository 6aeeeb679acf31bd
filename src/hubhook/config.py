import logging
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .constants import (
    APP_NAME,
    DEFAULT_GIT,
    DEFAULT_MAX_LOG_SIZE,
    DEFAULT_REMOTE_TEMPLATE,
    LOG_FILE,
)
from .errors import ConfigError

logger = logging.getLogger(APP_NAME)

_TOP_LEVEL_KEYS = {
    "location",
    "git",
    "secret",
    "allow_unsigned",
    "remote_template",
    "command_timeout",
    "log",
    "projects",
}
_PROJECT_KEYS = ("repo", "branch", "command")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass(frozen=True)
class Project:
    """A tracked repository.

    Attributes:
        id (str): Unique key; also the name of the working directory.
        repo (str): The remote slug (e.g. 'owner/name').
        branch (str): The branch to track.
        command (str): Program run in the working copy after new commits arrive.
    """

    id: str
    repo: str
    branch: str
    command: str


@dataclass(frozen=True)
class LogConfig:
    """Daemon log settings.

    Attributes:
        file (Path): Path of the rotating daemon log.
        max_size (int): Max bytes for the log file before rotation.
    """

    file: Path = LOG_FILE
    max_size: int = DEFAULT_MAX_LOG_SIZE


@dataclass(frozen=True)
class Config:
    """Read-only configuration snapshot shared by the listener and executor.

    Attributes:
        location (Path): Base directory holding one working copy per project.
        git (str): The git executable.
        secret (str | None): Shared secret for webhook signatures.
        allow_unsigned (bool): Accept notifications without a signature when no
                               secret is set.
        remote_template (str): Remote URL template, formatted with `repo`.
        command_timeout (int | None): Per-command time limit in seconds.
        log (LogConfig): Daemon log settings.
        projects (Mapping[str, Project]): The project registry, keyed by id.
    """

    location: Path
    git: str = DEFAULT_GIT
    secret: str | None = None
    allow_unsigned: bool = False
    remote_template: str = DEFAULT_REMOTE_TEMPLATE
    command_timeout: int | None = None
    log: LogConfig = field(default_factory=LogConfig)
    projects: Mapping[str, Project] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not isinstance(self.projects, MappingProxyType):
            object.__setattr__(self, "projects", MappingProxyType(dict(self.projects)))

    def get_project(self, identifier: str) -> Project | None:
        """Resolves a queued identifier to a project.

        The identifier is matched against project ids first, then against the
        `owner/name` slugs, so both a project key and the repository name carried
        by a push notification resolve.

        Args:
            identifier (str): A project id or repository slug.

        Returns:
            Project | None: The matching project, or None if nothing matches.
        """
        if project := self.projects.get(identifier):
            return project
        for project in self.projects.values():
            if project.repo == identifier:
                return project
        return None

    def project_path(self, project: Project) -> Path:
        """Returns the working-directory path of a project."""
        return self.location / project.id

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Loads the configuration snapshot from a TOML file.

        Args:
            path (Path): The configuration file.

        Returns:
            Config: The loaded snapshot.

        Raises:
            ConfigError: If the file is missing, unparsable or lacks `location`.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read {path}: {e}") from e

        return cls.from_dict(data, base_dir=path.parent)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> "Config":
        """Builds a snapshot from parsed TOML data.

        Unknown keys are ignored with a warning. Malformed optional values fall back
        to their defaults and malformed project entries are skipped, so they surface
        as unknown repositories at dispatch time instead of aborting startup.

        Args:
            data (dict[str, Any]): The parsed configuration.
            base_dir (Path | None): Directory that a relative `location` is resolved
                                    against. Defaults to the current directory.

        Returns:
            Config: The snapshot.
        """
        invalid_keys = set(data.keys()) - _TOP_LEVEL_KEYS
        if invalid_keys:
            logger.warning(
                f"Unknown config keys: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        location = data.get("location")
        if not isinstance(location, str) or not location:
            raise ConfigError("Config is missing the 'location' setting")
        location_path = Path(location).expanduser()
        if not location_path.is_absolute():
            location_path = (base_dir or Path.cwd()) / location_path

        kwargs: dict[str, Any] = {"location": location_path}
        for key in ("git", "secret", "remote_template"):
            value = data.get(key)
            if value is None:
                continue
            if isinstance(value, str) and value:
                kwargs[key] = value
            else:
                logger.warning(f"Config error in {key}: expected a string. Ignoring.")

        if "remote_template" in kwargs and "{repo}" not in kwargs["remote_template"]:
            logger.warning(
                "Config error in remote_template: missing '{repo}'. "
                "Falling back to default."
            )
            del kwargs["remote_template"]

        if "allow_unsigned" in data:
            if isinstance(data["allow_unsigned"], bool):
                kwargs["allow_unsigned"] = data["allow_unsigned"]
            else:
                logger.warning(
                    "Config error in allow_unsigned: expected true or false. Ignoring."
                )

        if "command_timeout" in data:
            try:
                kwargs["command_timeout"] = parse_time(data["command_timeout"]) or None
            except ValueError as e:
                logger.warning(
                    f"Config error in command_timeout: {e}. Falling back to no timeout."
                )

        kwargs["log"] = cls._parse_log(data.get("log", {}))
        kwargs["projects"] = cls._parse_projects(data.get("projects", {}))
        return cls(**kwargs)

    @staticmethod
    def _parse_log(section: Any) -> LogConfig:
        """Parses the [log] section, warning on invalid keys and values."""
        if not isinstance(section, dict):
            logger.warning("Config error in [log]: expected a table. Ignoring.")
            return LogConfig()

        invalid_keys = set(section.keys()) - {"file", "max_size"}
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [log]: {', '.join(sorted(invalid_keys))}. "
                "Ignoring."
            )

        updates: dict[str, Any] = {}
        if "file" in section:
            updates["file"] = Path(str(section["file"])).expanduser()
        if "max_size" in section:
            try:
                updates["max_size"] = parse_size(section["max_size"])
            except ValueError as e:
                logger.warning(
                    f"Config error in [log].max_size: {e}. Falling back to default."
                )
        return LogConfig(**updates)

    @staticmethod
    def _parse_projects(section: Any) -> dict[str, Project]:
        """Parses the [projects.*] tables, skipping entries that are incomplete."""
        if not isinstance(section, dict):
            logger.warning("Config error in [projects]: expected a table. Ignoring.")
            return {}

        projects: dict[str, Project] = {}
        tracked: dict[str, str] = {}
        for project_id, entry in section.items():
            if not isinstance(entry, dict):
                logger.warning(f"Config error in [projects.{project_id}]. Skipping.")
                continue

            missing = [
                k
                for k in _PROJECT_KEYS
                if not isinstance(entry.get(k), str) or not entry[k]
            ]
            if missing:
                logger.warning(
                    f"Config error in [projects.{project_id}]: missing "
                    f"{', '.join(missing)}. Skipping."
                )
                continue

            invalid_keys = set(entry.keys()) - set(_PROJECT_KEYS)
            if invalid_keys:
                logger.warning(
                    f"Unknown config keys in [projects.{project_id}]: "
                    f"{', '.join(sorted(invalid_keys))}. Ignoring."
                )

            repo = entry["repo"]
            if repo in tracked:
                logger.warning(
                    f"Projects {tracked[repo]} and {project_id} both track {repo}. "
                    f"Notifications for {repo} only update {tracked[repo]}."
                )
            else:
                tracked[repo] = project_id

            projects[project_id] = Project(
                id=project_id,
                repo=entry["repo"],
                branch=entry["branch"],
                command=entry["command"],
            )
        return projects
