"""Domain errors for devbootstrap."""

from typing import Optional


class BootstrapError(RuntimeError):
    """Raised when a provisioning step cannot reach its target state."""

    always_fatal = False


class CommandFailed(BootstrapError):
    """An external command exited non-zero or timed out."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ConfigMissing(BootstrapError):
    """The configuration file does not exist."""

    always_fatal = True


class ConfigInvalid(BootstrapError):
    """A required configuration value is missing or malformed."""

    always_fatal = True


class ToolInstallFailed(BootstrapError):
    """A declared tool is still absent after installation."""


class CloneFailed(BootstrapError):
    """A repository clone exited non-zero."""


class EngineNotReady(BootstrapError):
    """A container engine or database did not become ready in time."""


class DumpFailed(BootstrapError):
    """The remote database dump failed."""


class RestoreFatal(BootstrapError):
    """The local database could not be reached, dropped or created."""


class AuthFailed(BootstrapError):
    """No bearer credential could be obtained from the identity provider."""

    always_fatal = True


class TransportFailure(BootstrapError):
    """No HTTP response was received."""


class ApplicationError(BootstrapError):
    """An HTTP response was received but carries an error."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ExportDegraded(BootstrapError):
    """At least one tenant resource was not exported."""


class ManualActionRequired(BootstrapError):
    """The step cannot be automated with the current configuration."""


class ServiceStartFailed(BootstrapError):
    """A development service could not be started."""


class BootstrapCancelled(BootstrapError):
    """The user declined a confirmation; the remaining steps are skipped."""
