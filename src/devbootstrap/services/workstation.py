"""Workstation provisioning helpers: platform, git, SSH, GitHub, frontend, shell."""

import os
import shutil
import socket
import sys
from typing import Callable, Optional

from devbootstrap.errors import BootstrapError, ManualActionRequired

SSH_CONFIG_BLOCK = (
    "# Auto-add SSH keys to agent",
    "Host *",
    "  AddKeysToAgent yes",
    "  UseKeychain yes",
    "  IdentityFile ~/.ssh/id_ed25519",
)
FRONTEND_ENV_VAR = "FRONTEND_ENV_PATH"


class WorkstationService:
    """Idempotency checks and actions for the machine-level setup steps.

    Each ``*_configured``/``*_installed`` method is the guard of a step and
    the matching action performs the minimal change to reach that state.
    """

    def __init__(
        self,
        logger,
        console,
        run_cmd: Callable,
        filesystem_service,
        which: Callable[[str], Optional[str]] = shutil.which,
        home: Optional[str] = None,
        platform: str = sys.platform,
        disk_usage: Callable = shutil.disk_usage,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service
        self.which = which
        self.home = home or os.path.expanduser("~")
        self.platform = platform
        self.disk_usage = disk_usage

    @property
    def ssh_key_path(self) -> str:
        return os.path.join(self.home, ".ssh", "id_ed25519")

    @property
    def ssh_config_path(self) -> str:
        return os.path.join(self.home, ".ssh", "config")

    @property
    def shell_rc_path(self) -> str:
        return os.path.join(self.home, ".zshrc")

    def is_macos(self) -> bool:
        return self.platform == "darwin"

    def require_macos(self):
        raise BootstrapError(f"This tool is designed for macOS only (detected platform: {self.platform}).")

    def free_disk_gb(self, path: str = "/") -> int:
        return int(self.disk_usage(path).free // (1024 ** 3))

    def _git_config_get(self, key: str) -> str:
        result = self.run_cmd(["git", "config", "--global", key], check=False, capture_output=True)
        if result.returncode != 0:
            return ""
        return (result.stdout or "").strip()

    def _git_config_set(self, key: str, value: str):
        self.run_cmd(["git", "config", "--global", key, value], check=True, capture_output=True)

    def git_identity_configured(self) -> bool:
        return bool(self._git_config_get("user.name")) and bool(self._git_config_get("user.email"))

    def configure_git_identity(self, name: str, email: str) -> str:
        self._git_config_set("user.name", name)
        self._git_config_set("user.email", email)
        return f"Git configured: {name} <{email}>"

    def signing_configured(self) -> bool:
        return bool(self._git_config_get("user.signingkey"))

    def setup_commit_signing(self, email: str) -> str:
        key_path = self.ssh_key_path
        if os.path.isfile(key_path):
            self.logger.info("SSH key already exists: %s", key_path)
        else:
            self.console.print("[blue]Generating SSH key for commit signing...[/blue]")
            os.makedirs(os.path.dirname(key_path), mode=0o700, exist_ok=True)
            self.run_cmd(
                ["ssh-keygen", "-t", "ed25519", "-C", email, "-f", key_path, "-N", ""],
                check=True,
                capture_output=True,
            )
            added = self.run_cmd(["ssh-add", key_path], check=False, capture_output=True)
            if added.returncode != 0:
                self.logger.warning("Could not add %s to ssh-agent; add it manually with ssh-add.", key_path)

        self._git_config_set("gpg.format", "ssh")
        self._git_config_set("user.signingkey", f"{key_path}.pub")
        self._git_config_set("commit.gpgsign", "true")
        self._git_config_set("tag.gpgsign", "true")
        return "Git commit signing configured with SSH"

    def ssh_config_persisted(self) -> bool:
        return self.filesystem_service.file_contains(self.ssh_config_path, "AddKeysToAgent yes")

    def persist_ssh_config(self) -> str:
        self.filesystem_service.append_block(self.ssh_config_path, SSH_CONFIG_BLOCK)
        return f"SSH config updated: {self.ssh_config_path}"

    def github_authenticated(self) -> bool:
        result = self.run_cmd(["gh", "auth", "status"], check=False, capture_output=True)
        return result.returncode == 0

    def authenticate_github(self, token: Optional[str]) -> str:
        if token:
            self.console.print("[blue]Using GitHub Personal Access Token from setup.env[/blue]")
            self.run_cmd(
                ["gh", "auth", "login", "--with-token"],
                check=True,
                capture_output=True,
                input_text=f"{token}\n",
            )
            return "GitHub authentication complete (via token)"

        self.console.print(
            "[blue]No GITHUB_TOKEN provided, using interactive authentication. "
            "This will open a browser window.[/blue]"
        )
        self.run_cmd(["gh", "auth", "login"], check=True)
        return "GitHub authentication complete"

    def _public_key_body(self) -> Optional[str]:
        public_key = f"{self.ssh_key_path}.pub"
        if not os.path.isfile(public_key):
            return None
        with open(public_key, "r", encoding="utf-8") as file_obj:
            parts = file_obj.read().split()
        return parts[1] if len(parts) > 1 else None

    def signing_key_uploaded(self) -> bool:
        body = self._public_key_body()
        if body is None:
            return True
        result = self.run_cmd(["gh", "ssh-key", "list"], check=False, capture_output=True)
        return result.returncode == 0 and body in (result.stdout or "")

    def upload_signing_key(self) -> str:
        public_key = f"{self.ssh_key_path}.pub"
        title = f"{socket.gethostname()} - Commit Signing Key"
        result = self.run_cmd(
            ["gh", "ssh-key", "add", public_key, "--type", "signing", "--title", title],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            raise ManualActionRequired(
                "Failed to upload SSH signing key automatically. Please add "
                f"{public_key} manually at: https://github.com/settings/keys"
            )
        return "SSH signing key uploaded to GitHub"

    def frontend_deps_installed(self, frontend_dir: str) -> bool:
        return self.filesystem_service.is_non_empty_dir(os.path.join(frontend_dir, "node_modules"))

    def _ensure_global_package(self, command: str):
        if self.which(command):
            return
        self.console.print(f"[blue]Installing {command}...[/blue]")
        self.run_cmd(["npm", "install", "-g", command], check=True, capture_output=True)

    def install_frontend_deps(self, frontend_dir: str, use_pnpm: bool = False) -> str:
        if not os.path.isdir(frontend_dir):
            raise BootstrapError(f"Frontend directory not found: {frontend_dir}")

        if os.path.isfile(os.path.join(frontend_dir, "yarn.lock")):
            manager = "yarn"
        elif use_pnpm:
            manager = "pnpm"
        else:
            manager = "npm"

        if manager != "npm":
            self._ensure_global_package(manager)

        self.console.print(f"[blue]Installing frontend dependencies with {manager}...[/blue]")
        self.run_cmd([manager, "install"], check=True, cwd=frontend_dir)
        return f"Frontend dependencies installed ({manager})"

    def frontend_env_configured(self) -> bool:
        return self.filesystem_service.file_contains(self.shell_rc_path, FRONTEND_ENV_VAR)

    def configure_frontend_env(self, frontend_dir: str) -> str:
        env_path = os.path.join(frontend_dir, ".env")
        self.filesystem_service.append_block(
            self.shell_rc_path,
            ["# Workbench development environment", f'export {FRONTEND_ENV_VAR}="{env_path}"'],
        )
        return f"{FRONTEND_ENV_VAR} added to {self.shell_rc_path}"
