import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .constants import (
    BACKEND_REPO_URL,
    DEFAULT_BACKEND_PORT,
    DEFAULT_CONFIG_FILE,
    DEFAULT_FRONTEND_PORT,
    DEFAULT_LOG_FILE,
    DEFAULT_SETTINGS_FILE,
    FRONTEND_REPO_URL,
    MODES,
)
from .core import DevBootstrapper
from .errors import BootstrapError
from .models import ProjectLayout
from .services import restore_analysis
from .services.command_runner import CommandRunner
from .services.config_loader import SettingsLoader
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.service_runner import ServiceRunner


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)

console = Console()


def _load_settings(settings):
    resolved = settings
    if resolved is None:
        default_settings_path = os.path.join(os.getcwd(), DEFAULT_SETTINGS_FILE)
        if os.path.exists(default_settings_path):
            resolved = default_settings_path

    try:
        return SettingsLoader().load(resolved)
    except BootstrapError as exc:
        raise click.ClickException(str(exc)) from exc


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("devbootstrap")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        file_handler = next(
            (
                handler
                for handler in logger.handlers
                if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_path
            ),
            None,
        )
        if file_handler is None:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
            logger.addHandler(file_handler)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


@click.group()
def main():
    """Bootstrap and run the workbench development environment."""


@main.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to the KEY=value environment file (default: <project root>/{DEFAULT_CONFIG_FILE}).",
)
@click.option(
    "--mode",
    required=False,
    type=click.Choice(MODES),
    help="Bootstrap mode. Overrides BOOTSTRAP_MODE from the environment file.",
)
@click.option(
    "--settings",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML settings file. Defaults to {DEFAULT_SETTINGS_FILE} if present.",
)
@click.option(
    "--project-root",
    required=False,
    type=click.Path(file_okay=False),
    help="Directory that holds backend/ and frontend/ (default: current directory).",
)
@click.option("--yes", "assume_yes", is_flag=True, default=None, help="Answer yes to every prompt.")
@click.option(
    "--force-bootstrap",
    is_flag=True,
    default=None,
    help="Re-run destructive bootstrap steps (task bootstrap, UAT clone, exports).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option(
    "--log-file",
    type=click.Path(),
    help=f"Path to the run log file (default: <project root>/{DEFAULT_LOG_FILE}).",
)
def setup(config, mode, settings, project_root, assume_yes, force_bootstrap, verbose, log_file):
    """Provision this machine and bootstrap local data."""
    settings_values = _load_settings(settings)

    project_root = os.path.abspath(
        _resolve_option(project_root, settings_values, "project_root", default=os.getcwd())
    )
    config = _resolve_option(
        config,
        settings_values,
        "config",
        default=os.path.join(project_root, DEFAULT_CONFIG_FILE),
    )
    mode = _resolve_option(mode, settings_values, "mode")
    verbose = bool(_resolve_option(verbose, settings_values, "verbose", default=False))
    log_file = _resolve_option(
        log_file,
        settings_values,
        "log_file",
        default=os.path.join(project_root, DEFAULT_LOG_FILE),
    )
    assume_yes = bool(_resolve_option(assume_yes, settings_values, "assume_yes", default=False))
    force_bootstrap = bool(
        _resolve_option(force_bootstrap, settings_values, "force_bootstrap", default=False)
    )

    _configure_logging(verbose, log_file)

    try:
        bootstrapper = DevBootstrapper(
            config_path=config,
            mode=mode,
            project_root=project_root,
            assume_yes=assume_yes,
            force_bootstrap=force_bootstrap,
            http_timeout=float(_resolve_option(None, settings_values, "http_timeout", default=30.0)),
            docker_wait_attempts=int(
                _resolve_option(None, settings_values, "docker_wait_attempts", default=60)
            ),
            docker_wait_interval=float(
                _resolve_option(None, settings_values, "docker_wait_interval", default=2.0)
            ),
            db_wait_attempts=int(_resolve_option(None, settings_values, "db_wait_attempts", default=30)),
            db_wait_interval=float(
                _resolve_option(None, settings_values, "db_wait_interval", default=2.0)
            ),
            min_disk_gb=int(_resolve_option(None, settings_values, "min_disk_gb", default=20)),
            backend_repo_url=_resolve_option(
                None, settings_values, "backend_repo_url", default=BACKEND_REPO_URL
            ),
            frontend_repo_url=_resolve_option(
                None, settings_values, "frontend_repo_url", default=FRONTEND_REPO_URL
            ),
            export_dir=_resolve_option(None, settings_values, "export_dir"),
            allow_insecure_http=bool(
                _resolve_option(None, settings_values, "allow_insecure_http", default=False)
            ),
        )
    except BootstrapError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(bootstrapper.run())


@main.command()
@click.option(
    "--project-root",
    required=False,
    type=click.Path(file_okay=False),
    help="Directory that holds backend/ and frontend/ (default: current directory).",
)
@click.option(
    "--settings",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML settings file. Defaults to {DEFAULT_SETTINGS_FILE} if present.",
)
@click.option("--yes", "assume_yes", is_flag=True, default=None, help="Answer yes to every prompt.")
def start(project_root, settings, assume_yes):
    """Start backend and frontend and follow their logs until Ctrl+C."""
    settings_values = _load_settings(settings)
    project_root = os.path.abspath(
        _resolve_option(project_root, settings_values, "project_root", default=os.getcwd())
    )
    assume_yes = bool(_resolve_option(assume_yes, settings_values, "assume_yes", default=False))
    verbose = bool(_resolve_option(None, settings_values, "verbose", default=False))
    logger = _configure_logging(verbose, _resolve_option(None, settings_values, "log_file"))

    layout = ProjectLayout(root=project_root)
    for path in (layout.backend_dir, layout.frontend_dir):
        if not os.path.isdir(path):
            raise click.ClickException(
                f"Directory not found: {path}. Run `devbootstrap setup` first or pass --project-root."
            )

    command_runner = CommandRunner(logger=logger)
    runner = ServiceRunner(
        logger=logger,
        console=console,
        layout=layout,
        run_cmd=command_runner.run,
        docker_runtime_service=DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=command_runner.run,
        ),
        filesystem_service=FileSystemService(logger=logger, console=console),
        confirm=(lambda prompt: True) if assume_yes else click.confirm,
        backend_port=int(
            _resolve_option(None, settings_values, "backend_port", default=DEFAULT_BACKEND_PORT)
        ),
        frontend_port=int(
            _resolve_option(None, settings_values, "frontend_port", default=DEFAULT_FRONTEND_PORT)
        ),
    )
    raise SystemExit(runner.run())


@main.command(name="analyze-restore-log")
@click.argument("path", required=False, type=click.Path(), default=os.path.join("logs", "db-restore.log"))
def analyze_restore_log(path):
    """Classify the errors of a saved database restore log."""
    if not os.path.isfile(path):
        raise click.ClickException(
            f"Log file not found: {path}. Run the UAT bootstrap first to generate it."
        )

    with open(path, "r", encoding="utf-8", errors="replace") as file_obj:
        report = restore_analysis.analyze_output(file_obj.read())

    console.print(f"[blue]Database restore error analysis[/blue] ({path})")
    console.print(f"Total errors: {report.total_errors}")

    table = Table(title="Error summary")
    table.add_column("Category", style="bold")
    table.add_column("Count", justify="right")
    for category in restore_analysis.CATEGORIES:
        table.add_row(category.replace("_", " "), str(report.counts.get(category, 0)))
    console.print(table)

    if report.foreign_key_messages:
        console.print("[yellow]Top foreign key violations:[/yellow]")
        for message, count in report.foreign_key_messages:
            console.print(f"  {count:>6}  {message}", markup=False)

    if report.missing_extensions:
        console.print("[red]Missing extensions:[/red]")
        for message in report.missing_extensions:
            console.print(f"  {message}", markup=False)

    console.print("[blue]Recommendations:[/blue]")
    for note in restore_analysis.recommendations(report):
        console.print(f"  - {note}", markup=False)


if __name__ == "__main__":
    main()
