"""Run report: append-only step outcomes, rendered and persisted."""

import json
import os
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from rich.markup import escape
from rich.table import Table

from devbootstrap.models import StepOutcome

STATUS_STYLES = {
    "ok": ("✓", "green"),
    "skipped": ("↷", "cyan"),
    "warned": ("⚠", "yellow"),
    "failed": ("✗", "red"),
}


class RunReport:
    """Collects step outcomes for one run and writes them as JSON."""

    def __init__(self, report_file: Optional[str], logger):
        self.report_file = report_file
        self.logger = logger
        self.outcomes: List[StepOutcome] = []
        self.report: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "steps": [],
            "error": None,
        }

    def start_run(self, run_id: str, metadata: Dict[str, Any]):
        self.report["run_id"] = run_id
        self.report["status"] = "running"
        self.report["started_at"] = self._now()
        self.report["metadata"] = metadata
        self.write()

    def record(self, outcome: StepOutcome):
        self.outcomes.append(outcome)
        self.report["steps"].append(asdict(outcome))
        self.write()

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def finalized(self) -> bool:
        return self.report["finished_at"] is not None

    def finalize(self, status: str, error: Optional[str] = None):
        if self.finalized:
            return
        self.report["status"] = status
        self.report["finished_at"] = self._now()
        if self.report.get("started_at"):
            started_at = datetime.fromisoformat(self.report["started_at"])
            finished_at = datetime.fromisoformat(self.report["finished_at"])
            self.report["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.report["error"] = error
        self.write()

    def render(self, title: str = "Setup summary") -> Table:
        table = Table(title=title)
        table.add_column("Step", style="bold")
        table.add_column("Status")
        table.add_column("Message", overflow="fold")

        for outcome in self.outcomes:
            glyph, colour = STATUS_STYLES.get(outcome.status, ("?", "white"))
            table.add_row(
                outcome.name,
                f"[{colour}]{glyph} {outcome.status}[/{colour}]",
                escape(outcome.message),
            )

        return table

    def log_summary(self):
        """Writes one line per outcome so the summary lands in the run log."""
        self.logger.info(
            "Run summary: status=%s ok=%s skipped=%s warned=%s failed=%s",
            self.report["status"],
            self.count("ok"),
            self.count("skipped"),
            self.count("warned"),
            self.count("failed"),
        )
        for outcome in self.outcomes:
            self.logger.info("  %-8s %s %s", outcome.status, outcome.name, outcome.message)

    def write(self):
        if not self.report_file:
            return

        os.makedirs(os.path.dirname(self.report_file) or ".", exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            prefix="run-report-", suffix=".json", dir=os.path.dirname(self.report_file) or "."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.report, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.report_file)
        except OSError as exc:
            self.logger.warning("Could not write run report '%s': %s", self.report_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
