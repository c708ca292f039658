"""Configuration loaders for devbootstrap."""

from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml
from dotenv import dotenv_values

from devbootstrap.constants import REQUIRED_KEYS
from devbootstrap.errors import ConfigInvalid, ConfigMissing
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.models import BootstrapConfig


class EnvFileLoader:
    """Parses the ``KEY=value`` environment file into an immutable config."""

    def __init__(self, required_keys: Iterable[str] = REQUIRED_KEYS):
        self.required_keys = tuple(required_keys)

    def load(self, config_path: str) -> BootstrapConfig:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigMissing(actionable_error("config_missing", path=str(path)))

        try:
            parsed = dotenv_values(path, interpolate=False)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigInvalid(f"Could not read config file '{config_path}': {exc}") from exc

        values = {key: (value if value is not None else "") for key, value in parsed.items()}
        config = BootstrapConfig(path=str(path), values=values)

        missing = config.missing(self.required_keys)
        if missing:
            raise ConfigInvalid(
                actionable_error("config_invalid", path=str(path), keys=", ".join(missing))
            )

        return config


class SettingsLoader:
    """Loads YAML settings files for CLI defaults."""

    SUPPORTED_KEYS = {
        "project_root",
        "config",
        "mode",
        "verbose",
        "log_file",
        "assume_yes",
        "force_bootstrap",
        "http_timeout",
        "docker_wait_attempts",
        "docker_wait_interval",
        "db_wait_attempts",
        "db_wait_interval",
        "min_disk_gb",
        "backend_repo_url",
        "frontend_repo_url",
        "export_dir",
        "allow_insecure_http",
        "backend_port",
        "frontend_port",
    }

    def load(self, settings_path: Optional[str]) -> Dict[str, Any]:
        if not settings_path:
            return {}

        path = Path(settings_path)
        if not path.exists():
            raise ConfigMissing(f"Settings file not found: {settings_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigInvalid(f"Invalid settings file '{settings_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigInvalid("Settings file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigInvalid(f"Unknown settings keys: {unknown_list}")

        return parsed
