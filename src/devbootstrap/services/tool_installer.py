"""Detects and installs the declared development tools."""

import os
import shutil
from typing import Callable, Iterable, List, Optional, Tuple

import requests

from devbootstrap.constants import HOMEBREW_INSTALL_URL, HOMEBREW_PATHS
from devbootstrap.errors import BootstrapError, ToolInstallFailed
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.models import ToolSpec

DEFAULT_TOOLS = (
    ToolSpec("git", command="git"),
    ToolSpec("go", command="go"),
    ToolSpec("node", command="node"),
    ToolSpec("gh", command="gh"),
    ToolSpec("go-task", command="task"),
    ToolSpec("postgresql", command="psql"),
    ToolSpec("jq", command="jq"),
)


class ToolInstaller:
    """Installs missing tools through Homebrew, tolerating partial installs."""

    def __init__(
        self,
        logger,
        console,
        run_cmd: Callable,
        which: Callable[[str], Optional[str]] = shutil.which,
        requests_module=requests,
        http_timeout: float = 30.0,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.which = which
        self.requests = requests_module
        self.http_timeout = http_timeout

    def brew_path(self) -> Optional[str]:
        found = self.which("brew")
        if found:
            return found
        for candidate in HOMEBREW_PATHS:
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                return candidate
        return None

    def ensure_homebrew(self) -> str:
        existing = self.brew_path()
        if existing:
            return f"Homebrew already installed at {existing}"

        self.console.print("[blue]Installing Homebrew...[/blue]")
        self.logger.info("Downloading Homebrew installer from %s", HOMEBREW_INSTALL_URL)
        try:
            response = self.requests.get(HOMEBREW_INSTALL_URL, timeout=self.http_timeout)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            raise ToolInstallFailed(f"Could not download the Homebrew installer: {exc}") from exc

        self.run_cmd(["/bin/bash", "-c", response.text], check=True)

        installed = self.brew_path()
        if not installed:
            raise ToolInstallFailed(actionable_error("tool_install_failed", tool="brew"))
        return f"Homebrew installed at {installed}"

    def _brew(self) -> str:
        brew = self.brew_path()
        if not brew:
            raise ToolInstallFailed("Homebrew is not installed; cannot install packages.")
        return brew

    def is_present(self, tool: ToolSpec) -> bool:
        if tool.command and self.which(tool.command):
            return True

        brew = self.brew_path()
        if not brew:
            return False

        cmd = [brew, "list"]
        if tool.cask:
            cmd.append("--cask")
        cmd.append(tool.name)
        try:
            result = self.run_cmd(cmd, check=False, capture_output=True)
        except BootstrapError:
            return False
        return result.returncode == 0

    def missing(self, tools: Iterable[ToolSpec]) -> List[ToolSpec]:
        return [tool for tool in tools if not self.is_present(tool)]

    def install(self, tool: ToolSpec):
        cmd = [self._brew(), "install"]
        if tool.cask:
            cmd.append("--cask")
        cmd.append(tool.name)

        self.console.print(f"[blue]Installing {tool.name}...[/blue]")
        try:
            self.run_cmd(cmd, check=True, capture_output=True)
        except BootstrapError as exc:
            raise ToolInstallFailed(
                f"{actionable_error('tool_install_failed', tool=tool.name)}\n{exc}"
            ) from exc

        if not self.is_present(tool):
            raise ToolInstallFailed(actionable_error("tool_install_failed", tool=tool.name))
        self.console.print(f"[green]{tool.name} installed.[/green]")

    def ensure(self, tools: Iterable[ToolSpec]) -> Tuple[List[str], List[str]]:
        present: List[str] = []
        installed: List[str] = []

        for tool in tools:
            if self.is_present(tool):
                self.logger.debug("%s already installed", tool.name)
                present.append(tool.name)
                continue
            self.install(tool)
            installed.append(tool.name)

        self.logger.info(
            "Tools present: %s; installed: %s",
            ", ".join(present) or "-",
            ", ".join(installed) or "-",
        )
        return present, installed
