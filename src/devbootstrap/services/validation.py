"""URL validation helpers for devbootstrap."""

from urllib.parse import urlparse

from devbootstrap.errors import ConfigInvalid

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


class ValidationService:
    """Validates endpoint URLs and protocol policy."""

    def __init__(self, allow_insecure_http: bool = False):
        self.allow_insecure_http = allow_insecure_http

    def is_url(self, location: str) -> bool:
        scheme = urlparse(location).scheme.lower()
        return scheme in {"http", "https"}

    def enforce_https_policy(self, location: str, label: str, logger, console):
        """Rejects plain HTTP for remote hosts; loopback endpoints are exempt."""
        if not self.is_url(location):
            raise ConfigInvalid(f"{label} must be an http(s) URL, got: {location!r}")

        parsed = urlparse(location)
        if parsed.scheme.lower() != "http" or (parsed.hostname or "") in LOOPBACK_HOSTS:
            return

        if not self.allow_insecure_http:
            raise ConfigInvalid(
                f"{label} uses insecure HTTP. Suggested action: switch to HTTPS or set "
                "`allow_insecure_http: true` in the settings file only for trusted endpoints."
            )

        logger.warning("Insecure HTTP enabled for %s: %s", label, location)
        console.print(
            f"[yellow]Warning:[/yellow] Using insecure HTTP for {label}. "
            "Prefer HTTPS whenever possible."
        )
