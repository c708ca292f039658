"""Shared domain models for devbootstrap."""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .constants import STATE_DIR, TRUTHY_VALUES


@dataclass(frozen=True)
class BootstrapConfig:
    """Values loaded from the environment file, read-only for the whole run."""

    path: str
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.values.get(key)
        if value is None or value == "":
            return default
        return value

    def flag(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() in TRUTHY_VALUES

    def missing(self, keys: Iterable[str]) -> List[str]:
        return [key for key in keys if not (self.values.get(key) or "").strip()]


@dataclass(frozen=True)
class ProjectLayout:
    """Fixed local paths of the workbench checkout."""

    root: str

    @property
    def backend_dir(self) -> str:
        return os.path.join(self.root, "backend")

    @property
    def frontend_dir(self) -> str:
        return os.path.join(self.root, "frontend")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def state_dir(self) -> str:
        return os.path.join(self.root, STATE_DIR)


@dataclass(frozen=True)
class Step:
    """A named unit of work guarded by an idempotency check."""

    name: str
    action: Callable[[], Optional[str]]
    check: Optional[Callable[[], bool]] = None
    fatal: bool = True
    description: str = ""


@dataclass(frozen=True)
class StepOutcome:
    name: str
    status: str
    message: str = ""
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class ToolSpec:
    """A package-manager formula, optionally detected by its command name."""

    name: str
    command: Optional[str] = None
    cask: bool = False


@dataclass(frozen=True)
class RepositorySpec:
    name: str
    url: str
    path: str


@dataclass(frozen=True)
class ExportResource:
    """A tenant resource fetched from the identity-provider management API."""

    name: str
    method: str
    path: str
    payload: Optional[Dict[str, object]] = None
    expected_shape: Tuple[Tuple[str, type], ...] = ()


@dataclass(frozen=True)
class ResourceSuccess:
    name: str
    status: int
    body: str


@dataclass(frozen=True)
class ResourceApplicationError:
    name: str
    status: int
    body: str
    reason: str


@dataclass(frozen=True)
class ResourceTransportError:
    name: str
    cause: str


ResourceOutcome = Union[ResourceSuccess, ResourceApplicationError, ResourceTransportError]


@dataclass
class TenantExportReport:
    export_dir: str
    outcomes: List[ResourceOutcome] = field(default_factory=list)
    artifacts: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return [outcome.name for outcome in self.outcomes if not isinstance(outcome, ResourceSuccess)]

    @property
    def status(self) -> str:
        return "degraded" if self.failed else "complete"


@dataclass
class RestoreReport:
    counts: Dict[str, int] = field(default_factory=dict)
    foreign_key_messages: List[Tuple[str, int]] = field(default_factory=list)
    missing_extensions: List[str] = field(default_factory=list)
    log_path: Optional[str] = None

    @property
    def total_errors(self) -> int:
        return sum(self.counts.values())
