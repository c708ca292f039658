"""Ordered execution of idempotent provisioning steps."""

import time
from typing import Iterable, Optional

from rich.markup import escape

from devbootstrap.errors import BootstrapCancelled, BootstrapError
from devbootstrap.models import Step, StepOutcome
from devbootstrap.services.run_report import STATUS_STYLES


class StepExecutor:
    """Runs steps in order; a fatal failure halts the run.

    A step whose check reports the target state as already reached is
    recorded as ``skipped`` and its action never runs. Errors flagged
    ``always_fatal`` (configuration, authentication) halt the run even
    inside a warn-level step. A step raising ``BootstrapCancelled`` ends
    the run successfully with itself and every later step ``skipped``.
    """

    def __init__(self, report, logger, console):
        self.report = report
        self.logger = logger
        self.console = console
        self.failed_step: Optional[str] = None
        self.cancelled_step: Optional[str] = None

    def execute(self, steps: Iterable[Step]) -> bool:
        pending = iter(steps)
        for step in pending:
            if not self.run_step(step):
                self.failed_step = step.name
                return False
            if self.cancelled_step:
                for remaining in pending:
                    self._record(
                        remaining, "skipped", f"cancelled at {self.cancelled_step}", time.monotonic()
                    )
                break
        return True

    def run_step(self, step: Step) -> bool:
        started = time.monotonic()
        label = step.description or step.name

        try:
            if step.check is not None and step.check():
                self._record(step, "skipped", "already satisfied", started)
                return True

            self.console.print(f"[blue]ℹ[/blue] {escape(label)}...")
            self.logger.debug("step=%s status=running", step.name)
            message = step.action()
        except BootstrapCancelled as exc:
            self.cancelled_step = step.name
            self._record(step, "skipped", str(exc), started)
            return True
        except BootstrapError as exc:
            return self._handle_failure(step, exc, started)
        except Exception as exc:
            self.logger.exception("Unexpected error in step %s", step.name)
            return self._handle_failure(step, exc, started)

        self._record(step, "ok", message or label, started)
        return True

    def _handle_failure(self, step: Step, exc: Exception, started: float) -> bool:
        fatal = step.fatal or getattr(exc, "always_fatal", False)
        if fatal:
            self._record(step, "failed", str(exc), started)
            return False

        self._record(step, "warned", str(exc), started)
        return True

    def _record(self, step: Step, status: str, message: str, started: float):
        duration = round(time.monotonic() - started, 3)
        outcome = StepOutcome(
            name=step.name,
            status=status,
            message=message,
            duration_seconds=duration,
        )
        self.report.record(outcome)

        log = self.logger.info
        if status == "warned":
            log = self.logger.warning
        elif status == "failed":
            log = self.logger.error
        log("step=%s status=%s duration=%.3fs message=%s", step.name, status, duration, message)

        glyph, colour = STATUS_STYLES[status]
        self.console.print(
            f"[{colour}]{glyph}[/{colour}] {escape(step.description or step.name)}: {escape(message)}"
        )
