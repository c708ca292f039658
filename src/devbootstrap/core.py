import logging
import os
import tempfile
import uuid
from typing import Any, Callable, Dict, List, Optional

import click
import requests
from rich.console import Console
from rich.panel import Panel

from .constants import (
    BACKEND_REPO_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOCAL_ZITADEL_URL,
    DEFAULT_MIN_DISK_GB,
    DEFAULT_MODE,
    DEFAULT_TEST_USER_EMAIL,
    DEFAULT_TEST_USER_PASSWORD,
    DOCKER_SETTINGS_RELPATH,
    FRONTEND_REPO_URL,
    MODES,
    UAT_ZITADEL_KEYS,
)
from .errors import (
    BootstrapCancelled,
    BootstrapError,
    ConfigInvalid,
    ExportDegraded,
    ManualActionRequired,
)
from .errors_catalog import actionable_error
from .models import BootstrapConfig, ProjectLayout, RepositorySpec, Step, ToolSpec
from .services.command_runner import CommandRunner
from .services.config_loader import EnvFileLoader
from .services.database import DatabaseCloneService
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.local_identity import LocalIdentityService
from .services.repository_sync import RepositorySync
from .services.run_report import RunReport
from .services.state import StateService
from .services.step_executor import StepExecutor
from .services.tenant_export import TenantExportService
from .services.tool_installer import DEFAULT_TOOLS, ToolInstaller
from .services.validation import ValidationService
from .services.workstation import WorkstationService

console = Console()
logger = logging.getLogger("devbootstrap")

LOCAL_BOOTSTRAP_MARKER = "local_bootstrap"
UAT_DATABASE_MARKER = "uat_database_clone"
TENANT_EXPORT_MARKER = "identity_tenant_export"
TEST_USER_MARKER = "local_test_user"
BOOTSTRAP_MARKERS = (
    LOCAL_BOOTSTRAP_MARKER,
    UAT_DATABASE_MARKER,
    TENANT_EXPORT_MARKER,
    TEST_USER_MARKER,
)

DOCKER_DESKTOP = ToolSpec("docker", cask=True)


class DevBootstrapper:
    """Provisions a workbench development machine in an idempotent step sequence."""

    def __init__(
        self,
        config_path: str,
        mode: Optional[str] = None,
        project_root: Optional[str] = None,
        assume_yes: bool = False,
        force_bootstrap: bool = False,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        docker_wait_attempts: int = 60,
        docker_wait_interval: float = 2.0,
        db_wait_attempts: int = 30,
        db_wait_interval: float = 2.0,
        min_disk_gb: int = DEFAULT_MIN_DISK_GB,
        backend_repo_url: str = BACKEND_REPO_URL,
        frontend_repo_url: str = FRONTEND_REPO_URL,
        export_dir: Optional[str] = None,
        allow_insecure_http: bool = False,
        confirm: Callable[[str], bool] = click.confirm,
    ):
        self.config: BootstrapConfig = EnvFileLoader().load(config_path)
        self.mode = (mode or self.config.get("BOOTSTRAP_MODE") or DEFAULT_MODE).strip().lower()
        if self.mode not in MODES:
            raise ConfigInvalid(
                f"Invalid BOOTSTRAP_MODE '{self.mode}'. Supported modes: {', '.join(MODES)}"
            )

        self.layout = ProjectLayout(
            root=os.path.abspath(project_root or os.path.dirname(os.path.abspath(config_path)))
        )
        self.assume_yes = assume_yes
        self.force_bootstrap = force_bootstrap
        self.docker_wait_attempts = docker_wait_attempts
        self.docker_wait_interval = docker_wait_interval
        self.min_disk_gb = min_disk_gb
        self.export_dir = export_dir
        self.confirm = confirm
        self.repositories = [
            RepositorySpec("backend", backend_repo_url, self.layout.backend_dir),
            RepositorySpec("frontend", frontend_repo_url, self.layout.frontend_dir),
        ]

        self.run_id = uuid.uuid4().hex[:10]
        self.report = RunReport(
            report_file=os.path.join(self.layout.state_dir, "run-report.json"),
            logger=logger,
        )
        self.state_service = StateService(
            state_file=os.path.join(self.layout.state_dir, "state.json"),
            logger=logger,
        )
        self.executor = StepExecutor(report=self.report, logger=logger, console=console)

        self.command_runner = CommandRunner(logger=logger)
        run_cmd = self.command_runner.run
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.validation_service = ValidationService(allow_insecure_http=allow_insecure_http)
        self.tool_installer = ToolInstaller(
            logger=logger,
            console=console,
            run_cmd=run_cmd,
            requests_module=requests,
            http_timeout=http_timeout,
        )
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=run_cmd,
        )
        self.workstation_service = WorkstationService(
            logger=logger,
            console=console,
            run_cmd=run_cmd,
            filesystem_service=self.filesystem_service,
        )
        self.repository_sync = RepositorySync(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
            run_cmd=run_cmd,
        )
        self.database_service = DatabaseCloneService(
            logger=logger,
            console=console,
            docker_runtime_service=self.docker_runtime_service,
            filesystem_service=self.filesystem_service,
            run_cmd=run_cmd,
            db_wait_attempts=db_wait_attempts,
            db_wait_interval=db_wait_interval,
        )
        self.tenant_export_service = TenantExportService(
            logger=logger,
            console=console,
            requests_module=requests,
            timeout_seconds=http_timeout,
        )
        self.local_identity_service = LocalIdentityService(
            logger=logger,
            console=console,
            requests_module=requests,
            timeout_seconds=http_timeout,
        )

    def _build_metadata(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "config_file": self.config.path,
            "project_root": self.layout.root,
            "force_bootstrap": self.force_bootstrap,
        }

    def _confirm(self, prompt: str) -> bool:
        if self.assume_yes:
            logger.info("%s yes (--yes)", prompt)
            return True
        return bool(self.confirm(prompt))

    @property
    def docker_settings_file(self) -> str:
        return os.path.join(self.workstation_service.home, DOCKER_SETTINGS_RELPATH)

    # Workstation and toolchain steps

    def check_disk_space(self) -> str:
        free_gb = self.workstation_service.free_disk_gb()
        if free_gb >= self.min_disk_gb:
            return f"{free_gb}GB free"

        console.print(
            f"[yellow]Low disk space: {free_gb}GB available. "
            f"At least {self.min_disk_gb}GB recommended.[/yellow]"
        )
        if not self._confirm("Continue anyway?"):
            raise BootstrapError(f"Setup cancelled: only {free_gb}GB of free disk space.")
        return f"Continuing with {free_gb}GB free"

    def install_dev_tools(self) -> str:
        _, installed = self.tool_installer.ensure(DEFAULT_TOOLS)
        if installed:
            return f"Installed: {', '.join(installed)}"
        return "All development tools present"

    def docker_desktop_installed(self) -> bool:
        return bool(self.workstation_service.which("docker")) or self.tool_installer.is_present(
            DOCKER_DESKTOP
        )

    def install_docker_desktop(self) -> str:
        self.tool_installer.install(DOCKER_DESKTOP)
        self.docker_runtime_service.start_desktop()
        console.print(
            "[yellow]Docker Desktop installed. Complete the first-launch prompts "
            "(service agreement, privileged helper) when it opens.[/yellow]"
        )
        return "Docker Desktop installed"

    def verify_docker_running(self) -> str:
        self.docker_runtime_service.start_desktop()
        self.docker_runtime_service.wait_for_daemon(
            max_retries=self.docker_wait_attempts,
            interval_seconds=self.docker_wait_interval,
        )
        return "Docker is running"

    def install_frontend_deps(self) -> str:
        return self.workstation_service.install_frontend_deps(
            self.layout.frontend_dir,
            use_pnpm=self.config.flag("USE_PNPM"),
        )

    def sync_repositories(self) -> str:
        cloned = self.repository_sync.sync(self.repositories)
        self.repository_sync.verify(self.repositories)
        if cloned:
            return f"Cloned: {', '.join(cloned)}"
        return "Repositories already present"

    # Bootstrap steps

    def _completed(self, marker: str) -> Callable[[], bool]:
        return lambda: self.state_service.is_completed(marker)

    def run_local_bootstrap(self) -> str:
        console.print("[blue]Running task bootstrap in backend (fresh synthetic data)...[/blue]")
        self.command_runner.run(["task", "bootstrap"], check=True, cwd=self.layout.backend_dir)
        self.state_service.mark_completed(LOCAL_BOOTSTRAP_MARKER)
        return "Local bootstrap complete"

    def confirm_uat_clone(self) -> str:
        console.print(
            "[yellow]UAT mode replaces your local database with a copy of "
            f"{self.config.get('UAT_DB_NAME', '<unset>')} on "
            f"{self.config.get('UAT_DB_HOST', '<unset>')}.[/yellow]"
        )
        if not self._confirm("Replace local data with UAT data?"):
            raise BootstrapCancelled("Bootstrap cancelled by user; local data left unchanged.")
        return "Confirmed"

    def clone_uat_database(self) -> str:
        report = self.database_service.clone(self.config, self.layout)
        self.state_service.mark_completed(UAT_DATABASE_MARKER, details=dict(report.counts))
        message = f"UAT database restored ({report.total_errors} classified restore errors"
        if report.counts.get("foreign_key"):
            message += f", {report.counts['foreign_key']} foreign key violations"
        return f"{message}); log: {report.log_path}"

    def export_identity_tenant(self) -> str:
        url = self.config.get("UAT_ZITADEL_URL")
        service_user = self.config.get("UAT_ZITADEL_SERVICE_USER")
        service_key = self.config.get("UAT_ZITADEL_SERVICE_KEY")
        local_url = self.config.get("LOCAL_ZITADEL_URL", DEFAULT_LOCAL_ZITADEL_URL)

        if not (service_user and service_key):
            raise ManualActionRequired(
                actionable_error(
                    "zitadel_manual_export",
                    url=url or "the UAT Zitadel console",
                    local_url=local_url,
                )
            )
        if not url:
            raise ConfigInvalid(
                actionable_error("config_invalid", path=self.config.path, keys=UAT_ZITADEL_KEYS[0])
            )
        self.validation_service.enforce_https_policy(url, "UAT_ZITADEL_URL", logger, console)

        export_report = self.tenant_export_service.export(
            base_url=url,
            service_user=service_user,
            service_key=service_key,
            export_root=self.export_dir or tempfile.gettempdir(),
        )
        self._print_export_summary(export_report)

        if export_report.failed:
            raise ExportDegraded(
                f"Zitadel export degraded; failed: {', '.join(export_report.failed)}. "
                f"Artifacts in {export_report.export_dir}"
            )

        self.state_service.mark_completed(
            TENANT_EXPORT_MARKER, details={"export_dir": export_report.export_dir}
        )
        return f"Zitadel data exported to {export_report.export_dir}"

    def _print_export_summary(self, export_report):
        summary = self.tenant_export_service.summarize(export_report)
        console.print("[blue]Export summary:[/blue]")
        console.print(f"  Organization: {summary['organization'] or 'not exported'}")
        for key, label in (("users", "Users"), ("human_users", "Human users"), ("projects", "Projects")):
            value = summary[key]
            console.print(f"  {label}: {value if value is not None else 'not exported'}")
        console.print(f"  Export location: {export_report.export_dir}")

    def create_local_test_user(self) -> str:
        message = self.local_identity_service.create_test_user(
            base_url=self.config.get("LOCAL_ZITADEL_URL", DEFAULT_LOCAL_ZITADEL_URL),
            admin_token=self.config.get("LOCAL_ZITADEL_ADMIN_TOKEN"),
            email=self.config.get("TEST_USER_EMAIL") or DEFAULT_TEST_USER_EMAIL,
            password=self.config.get("TEST_USER_PASSWORD") or DEFAULT_TEST_USER_PASSWORD,
            first_name=self.config.get("TEST_USER_FIRSTNAME", "Test"),
            last_name=self.config.get("TEST_USER_LASTNAME", "User"),
        )
        self.state_service.mark_completed(TEST_USER_MARKER)
        return message

    def build_steps(self) -> List[Step]:
        ws = self.workstation_service
        docker = self.docker_runtime_service
        config = self.config

        steps = [
            Step(
                "check_platform",
                ws.require_macos,
                check=ws.is_macos,
                description="Check platform",
            ),
            Step(
                "check_disk_space",
                self.check_disk_space,
                check=lambda: ws.free_disk_gb() >= self.min_disk_gb,
                description="Check disk space",
            ),
            Step(
                "install_homebrew",
                self.tool_installer.ensure_homebrew,
                check=lambda: self.tool_installer.brew_path() is not None,
                description="Install Homebrew",
            ),
            Step(
                "install_dev_tools",
                self.install_dev_tools,
                check=lambda: not self.tool_installer.missing(DEFAULT_TOOLS),
                description="Install development tools",
            ),
            Step(
                "install_docker_desktop",
                self.install_docker_desktop,
                check=self.docker_desktop_installed,
                description="Install Docker Desktop",
            ),
            Step(
                "enable_docker_host_networking",
                lambda: docker.enable_host_networking(self.docker_settings_file),
                check=lambda: docker.host_networking_enabled(self.docker_settings_file),
                fatal=False,
                description="Enable Docker host networking",
            ),
            Step(
                "verify_docker_running",
                self.verify_docker_running,
                check=docker.is_daemon_running,
                description="Verify Docker is running",
            ),
            Step(
                "configure_git",
                lambda: ws.configure_git_identity(
                    config.get("GIT_USER_NAME"), config.get("GIT_USER_EMAIL")
                ),
                check=ws.git_identity_configured,
                description="Configure git identity",
            ),
            Step(
                "setup_commit_signing",
                lambda: ws.setup_commit_signing(config.get("GIT_USER_EMAIL")),
                check=ws.signing_configured,
                description="Set up commit signing",
            ),
            Step(
                "persist_ssh_config",
                ws.persist_ssh_config,
                check=ws.ssh_config_persisted,
                description="Persist SSH agent config",
            ),
            Step(
                "authenticate_github",
                lambda: ws.authenticate_github(config.get("GITHUB_TOKEN")),
                check=ws.github_authenticated,
                description="Authenticate GitHub CLI",
            ),
            Step(
                "upload_signing_key",
                ws.upload_signing_key,
                check=ws.signing_key_uploaded,
                fatal=False,
                description="Upload signing key to GitHub",
            ),
            Step(
                "sync_repositories",
                self.sync_repositories,
                check=lambda: self.repository_sync.all_synced(self.repositories),
                description="Clone repositories",
            ),
            Step(
                "install_frontend_deps",
                self.install_frontend_deps,
                check=lambda: ws.frontend_deps_installed(self.layout.frontend_dir),
                description="Install frontend dependencies",
            ),
            Step(
                "configure_environment",
                lambda: ws.configure_frontend_env(self.layout.frontend_dir),
                check=ws.frontend_env_configured,
                description="Configure shell environment",
            ),
        ]

        if self.mode == "local":
            steps.append(
                Step(
                    "run_local_bootstrap",
                    self.run_local_bootstrap,
                    check=self._completed(LOCAL_BOOTSTRAP_MARKER),
                    description="Bootstrap local data",
                )
            )
            return steps

        steps.extend(
            [
                Step(
                    "confirm_uat_clone",
                    self.confirm_uat_clone,
                    check=self._completed(UAT_DATABASE_MARKER),
                    description="Confirm UAT data replacement",
                ),
                Step(
                    "clone_uat_database",
                    self.clone_uat_database,
                    check=self._completed(UAT_DATABASE_MARKER),
                    description="Clone UAT database",
                ),
                Step(
                    "export_identity_tenant",
                    self.export_identity_tenant,
                    check=self._completed(TENANT_EXPORT_MARKER),
                    fatal=False,
                    description="Export UAT Zitadel tenant",
                ),
            ]
        )
        if config.flag("CREATE_TEST_USER"):
            steps.append(
                Step(
                    "create_local_test_user",
                    self.create_local_test_user,
                    check=self._completed(TEST_USER_MARKER),
                    fatal=False,
                    description="Create local test user",
                )
            )
        return steps

    def print_next_steps(self):
        lines = [
            "[bold green]Development environment setup complete![/bold green]",
            "",
            "1. Start everything: [yellow]devbootstrap start[/yellow]",
            "   or run [yellow]task watch[/yellow] in backend/ and [yellow]yarn dev[/yellow] in frontend/",
            "2. Access the applications:",
            "   Frontend: [blue]http://localhost:5173[/blue]",
            "   Backend:  [blue]http://localhost:8000[/blue]",
            f"   Zitadel:  [blue]{self.config.get('LOCAL_ZITADEL_URL', DEFAULT_LOCAL_ZITADEL_URL)}[/blue]",
            "",
            "[yellow]Open a new terminal or run `source ~/.zshrc` to load environment variables.[/yellow]",
        ]
        console.print(Panel("\n".join(lines), title="Next steps", expand=False))

    def run(self) -> int:
        exit_code = 1
        report_status = "failed"
        report_error: Optional[str] = None

        try:
            logger.info("Starting devbootstrap in %s mode (run %s)", self.mode, self.run_id)
            self.report.start_run(run_id=self.run_id, metadata=self._build_metadata())

            if self.force_bootstrap:
                self.state_service.clear(*BOOTSTRAP_MARKERS)

            if self.executor.execute(self.build_steps()):
                report_status = "success"
                exit_code = 0
            else:
                report_error = f"Step '{self.executor.failed_step}' failed"
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            report_status = "aborted"
            report_error = "Operation cancelled by user."
            return exit_code
        except BootstrapError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            report_error = str(exc)
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            report_error = str(exc)
            return exit_code
        finally:
            self.report.finalize(report_status, error=report_error)
            console.print(self.report.render())
            self.report.log_summary()
            if report_status == "success":
                self.print_next_steps()
