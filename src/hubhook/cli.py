import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, DEFAULT_SERVER
from .dispatch import CLOSED, DispatchQueue
from .errors import ConfigError
from .listener import WebhookServer, parse_address

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def load_config(path: Path) -> Config:
    """Loads the configuration, exiting the process if it is unusable.

    Args:
        path (Path): The configuration file.

    Returns:
        Config: The loaded snapshot.

    Raises:
        SystemExit: If the configuration cannot be loaded.
    """
    try:
        return Config.load(path)
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)


def serve(config: Config, address: str) -> None:
    """Runs the webhook listener and the executor until interrupted.

    Refuses to start without a webhook secret unless `allow_unsigned` is set. On
    shutdown the updates already queued are drained before exiting.

    Args:
        config (Config): The configuration snapshot.
        address (str): The HOST:PORT to listen on.
    """
    try:
        host, port = parse_address(address)
    except ValueError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)

    if not config.secret and not config.allow_unsigned:
        err_console.print(
            "[bold red]FATAL:[/bold red] Config is missing the 'secret' setting "
            "(set allow_unsigned = true to accept unsigned notifications)"
        )
        sys.exit(1)

    daemon.setup_logging(interactive=False, config=config)
    if not config.secret:
        logger.warning(
            "No webhook secret configured: accepting unsigned notifications"
        )
    logger.info(f"Tracking {len(config.projects)} project(s) under {config.location}")

    queue = DispatchQueue()
    executor = daemon.Executor(config, queue)
    executor.start()

    try:
        asyncio.run(WebhookServer(config, queue, host, port).run_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted: shutting down")
    except OSError as e:
        logger.critical(f"Could not start server on {address}: {e}")
        sys.exit(1)
    finally:
        if not executor.stop(timeout=0.1):
            logger.info("Draining queued updates before exit...")
            executor.stop()


def run_now(config: Config, identifiers: list[str]) -> bool:
    """Updates the given projects immediately, one at a time.

    Args:
        config (Config): The configuration snapshot.
        identifiers (list[str]): Project ids or repository slugs.

    Returns:
        bool: True if every update succeeded.
    """
    daemon.setup_logging(interactive=True, config=config)

    queue = DispatchQueue()
    for identifier in identifiers:
        queue.put(identifier)
    queue.close()

    executor = daemon.Executor(config, queue)
    ok = True
    with console.status("Updating projects...", spinner="dots"):
        while (item := queue.get()) is not CLOSED:
            result = executor.process(item)
            if result is None:
                ok = False
                console.print(f"[bold red]FAILED:[/bold red] {item}")
            elif result.command_ran:
                console.print(f"[bold green]UPDATED:[/bold green] {result.project_id}")
            else:
                console.print(f"[dim]UNCHANGED:[/dim] {result.project_id}")
    return ok


def list_projects(config: Config) -> None:
    """Displays a table of the configured projects and their working copies."""
    if not config.projects:
        console.print("[yellow]No projects configured.[/yellow]")
        return

    table = Table(title=f"Projects in {config.location}")
    table.add_column("Id", style="cyan")
    table.add_column("Repository", style="green")
    table.add_column("Branch")
    table.add_column("Command", style="dim")
    table.add_column("Working Copy")

    for project in config.projects.values():
        path = config.project_path(project)
        state = "[green]present[/green]" if path.exists() else "[yellow]absent[/yellow]"
        table.add_row(project.id, project.repo, project.branch, project.command, state)

    console.print(table)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Hubhook CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="GitHub webhook server that keeps local working copies updated.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=CONFIG_FILE,
        metavar="FILE",
        help=f"Configuration file location (default: {CONFIG_FILE})",
    )

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the webhook server")
    serve_parser.add_argument(
        "-s",
        "--server",
        default=DEFAULT_SERVER,
        metavar="HOST:PORT",
        help=f"The address and port to run the server on (default: {DEFAULT_SERVER})",
    )

    run_parser = subparsers.add_parser("run", help="Update projects immediately")
    run_parser.add_argument("projects", nargs="+", help="Project ids or owner/name")

    subparsers.add_parser("list", help="List configured projects")

    args = parser.parse_args(argv)
    config = load_config(args.config)

    if args.command == "run":
        if not run_now(config, args.projects):
            sys.exit(1)
        return
    elif args.command == "list":
        list_projects(config)
        return

    # Default Action
    serve(config, getattr(args, "server", DEFAULT_SERVER))


if __name__ == "__main__":
    main()
