"""Docker runtime services for devbootstrap."""

import json
import shutil
import subprocess
import time
from typing import Callable, List, Optional

from devbootstrap.constants import POSTGRES_SERVICE
from devbootstrap.errors import BootstrapError, ManualActionRequired
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.services.retry import wait_until


class DockerRuntimeService:
    """Manages Docker Desktop, docker-compose detection and container readiness."""

    def __init__(
        self,
        logger,
        console,
        run_cmd: Callable,
        subprocess_module=subprocess,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.subprocess = subprocess_module
        self.sleep = sleep
        self._compose_cmd: Optional[List[str]] = None

    def get_docker_compose_cmd(self) -> List[str]:
        if self._compose_cmd is not None:
            return self._compose_cmd

        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            self._compose_cmd = ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                self._compose_cmd = ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise BootstrapError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )
        return self._compose_cmd

    def is_daemon_running(self) -> bool:
        try:
            result = self.run_cmd(["docker", "info"], check=False, capture_output=True)
        except BootstrapError:
            return False
        return result.returncode == 0

    def start_desktop(self):
        self.console.print("[blue]Starting Docker Desktop...[/blue]")
        self.run_cmd(["open", "-a", "Docker"], check=False, capture_output=True)

    def wait_for_daemon(self, max_retries: int = 60, interval_seconds: float = 2.0):
        self.console.print("[yellow]Waiting for Docker to be ready...[/yellow]")

        def report_progress(attempt: int):
            if attempt % 5 == 0:
                self.console.print(
                    f"[blue]Still waiting for Docker... ({int(attempt * interval_seconds)} seconds elapsed)[/blue]"
                )

        wait_until(
            self.is_daemon_running,
            attempts=max_retries,
            interval_seconds=interval_seconds,
            error_message=actionable_error(
                "docker_not_ready", seconds=str(int(max_retries * interval_seconds))
            ),
            on_wait=report_progress,
            sleep=self.sleep,
        )
        self.console.print("[green]Docker is running and ready.[/green]")

    def is_service_running(self, cwd: str, service: str = POSTGRES_SERVICE) -> bool:
        result = self.run_cmd(
            self.get_docker_compose_cmd() + ["ps", service],
            check=False,
            capture_output=True,
            cwd=cwd,
        )
        if result.returncode != 0:
            return False
        output = result.stdout or ""
        return "Up" in output or "running" in output

    def is_database_ready(self, cwd: str, user: str, service: str = POSTGRES_SERVICE) -> bool:
        result = self.run_cmd(
            self.get_docker_compose_cmd()
            + ["exec", "-T", service, "pg_isready", "-U", user],
            check=False,
            capture_output=True,
            cwd=cwd,
        )
        return result.returncode == 0

    def ensure_database_engine(
        self,
        cwd: str,
        user: str,
        service: str = POSTGRES_SERVICE,
        max_retries: int = 30,
        interval_seconds: float = 2.0,
    ):
        if self.is_service_running(cwd, service):
            self.logger.info("PostgreSQL container is running")
        else:
            self.console.print("[blue]Starting PostgreSQL container...[/blue]")
            self.run_cmd(
                self.get_docker_compose_cmd() + ["up", "-d", service],
                check=True,
                capture_output=True,
                cwd=cwd,
            )

        self.console.print("[yellow]Waiting for database to be ready...[/yellow]")
        wait_until(
            lambda: self.is_database_ready(cwd, user, service),
            attempts=max_retries,
            interval_seconds=interval_seconds,
            error_message=actionable_error(
                "postgres_not_ready", seconds=str(int(max_retries * interval_seconds))
            ),
            sleep=self.sleep,
        )
        self.console.print("[green]Database is ready.[/green]")

    @staticmethod
    def host_networking_enabled(settings_file: str) -> bool:
        try:
            with open(settings_file, "r", encoding="utf-8") as file_obj:
                settings = json.load(file_obj)
        except (OSError, json.JSONDecodeError):
            return False
        return isinstance(settings, dict) and settings.get("HostNetworkingEnabled") is True

    def enable_host_networking(self, settings_file: str) -> str:
        try:
            with open(settings_file, "r", encoding="utf-8") as file_obj:
                settings = json.load(file_obj)
        except FileNotFoundError as exc:
            raise ManualActionRequired(
                "Docker settings file not found. Please enable host networking manually in Docker Desktop."
            ) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise BootstrapError(f"Could not read Docker settings '{settings_file}': {exc}") from exc

        if not isinstance(settings, dict):
            raise BootstrapError(f"Docker settings '{settings_file}' is not a JSON object.")

        was_running = self.is_daemon_running()
        if was_running:
            self.console.print("[blue]Stopping Docker to update settings...[/blue]")
            self.run_cmd(
                ["osascript", "-e", 'quit app "Docker"'], check=False, capture_output=True
            )
            self.sleep(3)

        shutil.copy2(settings_file, f"{settings_file}.backup")
        settings["HostNetworkingEnabled"] = True
        with open(settings_file, "w", encoding="utf-8") as file_obj:
            json.dump(settings, file_obj, indent=2)
            file_obj.write("\n")
        self.logger.info("Host networking enabled in %s (backup at %s.backup)", settings_file, settings_file)

        self.start_desktop()
        return "Host networking enabled"
