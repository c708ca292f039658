"""Day-to-day `start` flow: launch backend and frontend and follow their logs."""

import os
import shutil
import signal
import socket
import subprocess
import time
from dataclasses import dataclass
from typing import IO, Callable, Dict, List, Optional

import click
from packaging import version

from devbootstrap.constants import (
    DEFAULT_BACKEND_PORT,
    DEFAULT_FRONTEND_PORT,
    DEFAULT_LOCAL_DB_USER,
    MIN_GO_VERSION,
)
from devbootstrap.errors import BootstrapError, ServiceStartFailed


@dataclass
class ManagedProcess:
    name: str
    process: subprocess.Popen
    log_path: str
    log_file: IO

    @property
    def pgid(self) -> int:
        # Spawned with start_new_session=True, so the child leads its own group.
        return self.process.pid


class ProcessSupervisor:
    """Owns child process groups and terminates them on every exit path.

    Use as a context manager: on normal exit, exception, Ctrl+C or SIGTERM
    each spawned group receives SIGTERM, then SIGKILL once the grace period
    runs out, so grandchildren (e.g. Vite under ``yarn dev``) go too.
    """

    def __init__(self, logger, console, grace_seconds: float = 5.0, popen=subprocess.Popen):
        self.logger = logger
        self.console = console
        self.grace_seconds = grace_seconds
        self.popen = popen
        self.processes: List[ManagedProcess] = []
        self._previous_sigterm = None

    def __enter__(self):
        self._previous_sigterm = signal.signal(signal.SIGTERM, self._on_sigterm)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.stop_all()
        finally:
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None
        return False

    @staticmethod
    def _on_sigterm(signum, frame):
        raise KeyboardInterrupt

    def spawn(self, name: str, cmd: List[str], cwd: str, log_path: str) -> ManagedProcess:
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
        log_file = open(log_path, "w", encoding="utf-8")
        try:
            process = self.popen(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            log_file.close()
            raise ServiceStartFailed(f"Failed to start {name} ({' '.join(cmd)}): {exc}") from exc

        managed = ManagedProcess(name=name, process=process, log_path=log_path, log_file=log_file)
        self.processes.append(managed)
        self.logger.info("%s started (PID: %s): %s", name, process.pid, " ".join(cmd))
        return managed

    def exited(self) -> List[ManagedProcess]:
        return [managed for managed in self.processes if managed.process.poll() is not None]

    def _signal_group(self, managed: ManagedProcess, sig: int) -> bool:
        try:
            os.killpg(managed.pgid, sig)
        except ProcessLookupError:
            return False
        except PermissionError as exc:
            self.logger.warning("Could not signal %s group %s: %s", managed.name, managed.pgid, exc)
            return False
        return True

    def _group_alive(self, managed: ManagedProcess) -> bool:
        return self._signal_group(managed, 0)

    def stop_all(self):
        if not self.processes:
            return

        self.console.print("\n[yellow]Shutting down services...[/yellow]")
        for managed in self.processes:
            self.console.print(f"[blue]Stopping {managed.name} (PID: {managed.process.pid})[/blue]")
            self._signal_group(managed, signal.SIGTERM)

        deadline = time.monotonic() + self.grace_seconds
        for managed in self.processes:
            while time.monotonic() < deadline:
                managed.process.poll()
                if managed.process.returncode is not None and not self._group_alive(managed):
                    break
                time.sleep(0.1)
            if self._signal_group(managed, signal.SIGKILL):
                self.logger.debug("Sent SIGKILL to %s group %s", managed.name, managed.pgid)
            try:
                managed.process.wait(timeout=self.grace_seconds)
            except subprocess.TimeoutExpired:
                self.logger.warning("%s (PID %s) did not exit", managed.name, managed.process.pid)
            managed.log_file.close()

        self.processes = []
        self.console.print("[green]Services stopped[/green]")


class ServiceRunner:
    """Checks prerequisites, then runs backend and frontend until interrupted."""

    def __init__(
        self,
        logger,
        console,
        layout,
        run_cmd: Callable,
        docker_runtime_service,
        filesystem_service,
        which: Callable[[str], Optional[str]] = shutil.which,
        confirm: Callable[[str], bool] = click.confirm,
        backend_port: int = DEFAULT_BACKEND_PORT,
        frontend_port: int = DEFAULT_FRONTEND_PORT,
        supervisor_factory: Optional[Callable[[], ProcessSupervisor]] = None,
        startup_grace_seconds: float = 3.0,
        poll_interval_seconds: float = 0.5,
    ):
        self.logger = logger
        self.console = console
        self.layout = layout
        self.run_cmd = run_cmd
        self.docker_runtime_service = docker_runtime_service
        self.filesystem_service = filesystem_service
        self.which = which
        self.confirm = confirm
        self.backend_port = backend_port
        self.frontend_port = frontend_port
        self.supervisor_factory = supervisor_factory or (lambda: ProcessSupervisor(logger, console))
        self.startup_grace_seconds = startup_grace_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def _header(self, title: str):
        self.console.rule(f"[blue]{title}[/blue]")

    def _ok(self, message: str):
        self.console.print(f"[green]✓ {message}[/green]")

    def _warn(self, message: str):
        self.console.print(f"[yellow]⚠ {message}[/yellow]")
        self.logger.warning(message)

    def go_version(self) -> Optional[str]:
        result = self.run_cmd(["go", "version"], check=False, capture_output=True)
        if result.returncode != 0:
            return None
        for token in (result.stdout or "").split():
            if token.startswith("go") and token[2:3].isdigit():
                return token[2:]
        return None

    def check_prerequisites(self):
        self._header("Checking System Prerequisites")

        if not self.which("go"):
            raise ServiceStartFailed(f"Go is not installed. Please install Go {MIN_GO_VERSION} or higher.")
        go_ver = self.go_version()
        if go_ver and version.parse(go_ver) < version.parse(MIN_GO_VERSION):
            raise ServiceStartFailed(f"Go {go_ver} found; Go {MIN_GO_VERSION} or higher is required.")
        self._ok(f"Go installed: {go_ver or 'unknown version'}")

        for command, label in (("node", "Node.js"), ("yarn", "Yarn")):
            if not self.which(command):
                raise ServiceStartFailed(f"{label} is not installed. Please install {label}.")
            self._ok(f"{label} installed")

        if not self.which("docker"):
            self._warn("Docker not found. Some services may not be available.")
        elif not self.docker_runtime_service.is_daemon_running():
            raise ServiceStartFailed("Docker daemon is not running. Please start Docker.")
        else:
            self._ok("Docker daemon is running")

        if self.which("task"):
            self._ok("Task (taskfile) is installed")
        else:
            self._warn("Task is not installed. Using fallback commands. Install from: https://taskfile.dev")

    def _ensure_env_file(self, directory: str, candidates: List[str], target: str, label: str):
        for candidate in candidates:
            if os.path.isfile(os.path.join(directory, candidate)):
                self._ok(f"{label} {candidate} file exists")
                return

        example = os.path.join(directory, ".env.example")
        if not os.path.isfile(example):
            raise ServiceStartFailed(f".env.example not found in {label.lower()} directory; cannot create {target}.")
        self.filesystem_service.copy_if_missing(example, os.path.join(directory, target))
        self._warn(f"Created {target} from .env.example. Please review it before starting the {label.lower()}.")

    def prepare_backend(self):
        self._header("Checking Backend Prerequisites")
        backend = self.layout.backend_dir
        self._ensure_env_file(backend, [".env.local", ".env"], ".env.local", "Backend")

        if not os.path.isfile(os.path.join(backend, "go.mod")):
            raise ServiceStartFailed("go.mod not found in backend directory")
        self.console.print("[blue]Checking Go dependencies...[/blue]")
        self.run_cmd(["go", "mod", "download"], check=True, capture_output=True, cwd=backend)
        self._ok("Go dependencies ready")

        self.docker_runtime_service.ensure_database_engine(
            cwd=backend,
            user=DEFAULT_LOCAL_DB_USER,
            max_retries=30,
            interval_seconds=1.0,
        )

    def prepare_frontend(self):
        self._header("Checking Frontend Prerequisites")
        frontend = self.layout.frontend_dir
        self._ensure_env_file(frontend, [".env"], ".env", "Frontend")

        if os.path.isdir(os.path.join(frontend, "node_modules")):
            self._ok("node_modules directory exists")
        else:
            self._warn("node_modules not found. Installing dependencies...")
            self.run_cmd(["yarn", "install"], check=True, cwd=frontend)
            self._ok("Frontend dependencies installed")

    @staticmethod
    def port_in_use(port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(0.5)
            return sock.connect_ex(("127.0.0.1", port)) == 0

    def _port_owners(self, port: int) -> List[int]:
        result = self.run_cmd(["lsof", "-ti", f":{port}"], check=False, capture_output=True)
        return [int(pid) for pid in (result.stdout or "").split() if pid.isdigit()]

    def ensure_port_free(self, port: int, label: str):
        if not self.port_in_use(port):
            self._ok(f"Port {port} is available ({label})")
            return

        owners = self._port_owners(port)
        self._warn(f"Port {port} is already in use (PIDs: {', '.join(map(str, owners)) or 'unknown'}).")
        if not owners or not self.confirm("Kill the process and continue?"):
            raise ServiceStartFailed(f"Cannot start {label} while port {port} is in use.")

        for pid in owners:
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                continue
        time.sleep(1)
        self._ok(f"Port {port} freed")

    def backend_command(self) -> List[str]:
        if self.which("task"):
            return ["task", "run"]
        return ["go", "run", "./cmd/server"]

    def launch(self, supervisor: ProcessSupervisor):
        self._header("Starting Services")
        logs_dir = self.layout.logs_dir

        for name, cmd, cwd in (
            ("backend", self.backend_command(), self.layout.backend_dir),
            ("frontend", ["yarn", "dev"], self.layout.frontend_dir),
        ):
            log_path = os.path.join(logs_dir, f"{name}.log")
            self.console.print(f"[blue]Starting {name}... logs: {log_path}[/blue]")
            managed = supervisor.spawn(name, cmd, cwd, log_path)
            time.sleep(self.startup_grace_seconds)
            if managed.process.poll() is not None:
                raise ServiceStartFailed(f"{name.capitalize()} failed to start. Check logs at: {log_path}")
            self._ok(f"{name.capitalize()} started (PID: {managed.process.pid})")

        self._header("Services Running")
        self.console.print(f"[green]✓ Backend:  http://localhost:{self.backend_port}[/green]")
        self.console.print(f"[green]✓ Frontend: http://localhost:{self.frontend_port}[/green]")
        self.console.print("[yellow]Press Ctrl+C to stop all services[/yellow]")

    def follow_logs(self, supervisor: ProcessSupervisor) -> int:
        handles: Dict[str, IO] = {}
        try:
            for managed in supervisor.processes:
                handles[managed.name] = open(managed.log_path, "r", encoding="utf-8", errors="replace")

            while True:
                for name, handle in handles.items():
                    for line in handle.readlines():
                        self.console.print(f"[dim]{name:<8}[/dim] {line.rstrip()}", markup=False)
                dead = supervisor.exited()
                if dead:
                    for managed in dead:
                        self.logger.error(
                            "%s exited with code %s. Check logs at: %s",
                            managed.name,
                            managed.process.returncode,
                            managed.log_path,
                        )
                    return 1
                time.sleep(self.poll_interval_seconds)
        finally:
            for handle in handles.values():
                handle.close()

    def run(self) -> int:
        try:
            self.check_prerequisites()
            self.prepare_backend()
            self.prepare_frontend()
            self._header("Checking Port Availability")
            self.ensure_port_free(self.backend_port, "backend")
            self.ensure_port_free(self.frontend_port, "frontend")
        except BootstrapError as exc:
            self.console.print(f"[bold red]✗ {exc}[/bold red]")
            self.logger.error(str(exc))
            return 1

        with self.supervisor_factory() as supervisor:
            try:
                self.launch(supervisor)
                return self.follow_logs(supervisor)
            except KeyboardInterrupt:
                self.logger.info("Interrupted; stopping services")
                return 0
            except BootstrapError as exc:
                self.console.print(f"[bold red]✗ {exc}[/bold red]")
                self.logger.error(str(exc))
                return 1
