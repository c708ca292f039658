"""Subprocess execution service for devbootstrap."""

import os
import subprocess
from typing import IO, Dict, List, Optional

from devbootstrap.errors import BootstrapError, CommandFailed


class CommandRunner:
    """Runs external commands and turns launch failures and non-zero exits into errors.

    With ``check=False`` a non-zero exit is returned to the caller untouched,
    so callers that classify ``stderr`` themselves (the database restore)
    see the full output.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    @staticmethod
    def _child_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
        stdin: Optional[IO] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s%s", cmd_str, f" (in {cwd})" if cwd else "")
        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
                cwd=cwd,
                env=self._child_env(env),
                input=input_text,
                stdin=stdin if input_text is None else None,
            )
        except FileNotFoundError as exc:
            raise BootstrapError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandFailed(
                f"Command timed out after {effective_timeout}s: {cmd_str}",
                returncode=None,
            ) from exc
        except OSError as exc:
            raise BootstrapError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result
        if not check:
            self.logger.debug("Command exited %s: %s", result.returncode, cmd_str)
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"
        raise CommandFailed(message, returncode=result.returncode, stderr=stderr)
