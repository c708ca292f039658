"""
devbootstrap - Idempotent workbench development environment bootstrap
"""

__version__ = "0.1.0"

from .core import DevBootstrapper
from .errors import BootstrapError

__all__ = ["DevBootstrapper", "BootstrapError"]
