"""Completion markers for destructive bootstrap steps."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from devbootstrap.errors import BootstrapError


class StateService:
    """Persists which destructive steps already completed on this machine."""

    SCHEMA_VERSION = 1

    def __init__(self, state_file: str, logger):
        self.state_file = state_file
        self.logger = logger
        self._state: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        if self._state is not None:
            return self._state

        if not os.path.exists(self.state_file):
            self._state = {"schema_version": self.SCHEMA_VERSION, "completed": {}}
            return self._state

        try:
            with open(self.state_file, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise BootstrapError(f"Could not read state file '{self.state_file}': {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("completed", {}), dict):
            raise BootstrapError(
                f"State file '{self.state_file}' has invalid format. Remove it and run again."
            )

        data.setdefault("completed", {})
        self._state = data
        return data

    def save(self):
        state = self.load()
        os.makedirs(os.path.dirname(self.state_file) or ".", exist_ok=True)
        state["schema_version"] = self.SCHEMA_VERSION
        state["updated_at"] = self._now()

        fd, temp_path = tempfile.mkstemp(
            prefix="state-", suffix=".json", dir=os.path.dirname(self.state_file) or "."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(state, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.state_file)
        except OSError as exc:
            raise BootstrapError(f"Could not write state file '{self.state_file}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def is_completed(self, name: str) -> bool:
        return name in self.load()["completed"]

    def mark_completed(self, name: str, details: Optional[Dict[str, Any]] = None):
        self.load()["completed"][name] = {"completed_at": self._now(), "details": details or {}}
        self.save()

    def clear(self, *names: str):
        completed = self.load()["completed"]
        removed = [name for name in names if completed.pop(name, None) is not None]
        if removed:
            self.logger.info("Cleared completion markers: %s", ", ".join(removed))
            self.save()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
