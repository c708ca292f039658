"""Remote-to-local PostgreSQL clone for devbootstrap."""

import os
import tempfile
import time
from typing import Callable, Optional

from devbootstrap.constants import (
    DEFAULT_LOCAL_DB_NAME,
    DEFAULT_LOCAL_DB_USER,
    POSTGRES_SERVICE,
    UAT_DB_KEYS,
)
from devbootstrap.errors import BootstrapError, ConfigInvalid, DumpFailed, RestoreFatal
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.models import BootstrapConfig, ProjectLayout, RestoreReport
from devbootstrap.services import restore_analysis


class DatabaseCloneService:
    """Dumps the UAT database and restores it into the local Postgres container.

    The local database is dropped and recreated on every call. Individual
    statement errors during restore are classified and counted; only a
    failure to reach, drop or create the local database is fatal. The
    dump file is deleted on success and kept on any failure.
    """

    def __init__(
        self,
        logger,
        console,
        docker_runtime_service,
        filesystem_service,
        run_cmd: Callable,
        db_wait_attempts: int = 30,
        db_wait_interval: float = 2.0,
        dump_dir: Optional[str] = None,
    ):
        self.logger = logger
        self.console = console
        self.docker_runtime_service = docker_runtime_service
        self.filesystem_service = filesystem_service
        self.run_cmd = run_cmd
        self.db_wait_attempts = db_wait_attempts
        self.db_wait_interval = db_wait_interval
        self.dump_dir = dump_dir or tempfile.gettempdir()

    def _exec_psql(self, layout: ProjectLayout, user: str, database: str, sql: str):
        return self.run_cmd(
            self.docker_runtime_service.get_docker_compose_cmd()
            + ["exec", "-T", POSTGRES_SERVICE, "psql", "-U", user, "-d", database, "-c", sql],
            check=False,
            capture_output=True,
            cwd=layout.backend_dir,
        )

    def dump_remote(self, config: BootstrapConfig, dump_path: str):
        self.console.print("[blue]Dumping UAT database...[/blue]")
        cmd = [
            "pg_dump",
            "-h",
            config.get("UAT_DB_HOST"),
            "-p",
            config.get("UAT_DB_PORT"),
            "-U",
            config.get("UAT_DB_USER"),
            "-d",
            config.get("UAT_DB_NAME"),
            "--clean",
            "--if-exists",
            "--no-owner",
            "--no-privileges",
            "-f",
            dump_path,
        ]
        try:
            self.run_cmd(
                cmd,
                check=True,
                capture_output=True,
                env={"PGPASSWORD": config.get("UAT_DB_PASSWORD", "")},
            )
        except BootstrapError as exc:
            detail = getattr(exc, "stderr", "") or str(exc)
            raise DumpFailed(
                actionable_error(
                    "dump_failed",
                    name=config.get("UAT_DB_NAME", ""),
                    host=config.get("UAT_DB_HOST", ""),
                    path=dump_path,
                )
                + f"\n{detail}"
            ) from exc
        self.console.print(f"[green]UAT database dumped to {dump_path}[/green]")

    def recreate_local(self, layout: ProjectLayout, user: str, database: str, dump_path: str):
        self.console.print("[blue]Recreating local database...[/blue]")
        for sql in (f'DROP DATABASE IF EXISTS "{database}";', f'CREATE DATABASE "{database}";'):
            result = self._exec_psql(layout, user, "postgres", sql)
            if result.returncode != 0:
                detail = (result.stderr or "").strip() or f"`{sql}` exited {result.returncode}"
                raise RestoreFatal(actionable_error("restore_fatal", detail=detail, path=dump_path))

    def restore(
        self, layout: ProjectLayout, user: str, database: str, dump_path: str
    ) -> RestoreReport:
        self.console.print("[blue]Restoring to local database...[/blue]")
        cmd = self.docker_runtime_service.get_docker_compose_cmd() + [
            "exec",
            "-T",
            POSTGRES_SERVICE,
            "psql",
            "-U",
            user,
            "-d",
            database,
        ]
        with open(dump_path, "r", encoding="utf-8", errors="replace") as dump_file:
            result = self.run_cmd(
                cmd,
                check=False,
                capture_output=True,
                cwd=layout.backend_dir,
                stdin=dump_file,
            )

        output = result.stderr or ""
        os.makedirs(layout.logs_dir, exist_ok=True)
        log_path = os.path.join(layout.logs_dir, "db-restore.log")
        with open(log_path, "w", encoding="utf-8") as file_obj:
            file_obj.write(output)

        if result.returncode != 0:
            detail = f"psql exited {result.returncode}"
            if output.strip():
                detail = output.strip().splitlines()[-1]
            raise RestoreFatal(actionable_error("restore_fatal", detail=detail, path=dump_path))

        report = restore_analysis.analyze_output(output)
        report.log_path = log_path
        return report

    def clone(self, config: BootstrapConfig, layout: ProjectLayout) -> RestoreReport:
        missing = config.missing(UAT_DB_KEYS)
        if missing:
            raise ConfigInvalid(
                actionable_error("uat_db_invalid", path=config.path, keys=", ".join(missing))
            )

        user = config.get("LOCAL_DB_USER", DEFAULT_LOCAL_DB_USER)
        database = config.get("LOCAL_DB_NAME", DEFAULT_LOCAL_DB_NAME)

        self.docker_runtime_service.ensure_database_engine(
            cwd=layout.backend_dir,
            user=user,
            max_retries=self.db_wait_attempts,
            interval_seconds=self.db_wait_interval,
        )

        os.makedirs(self.dump_dir, exist_ok=True)
        dump_path = os.path.join(self.dump_dir, f"uat_dump_{int(time.time())}.sql")
        self.dump_remote(config, dump_path)

        try:
            self.recreate_local(layout, user, database, dump_path)
            report = self.restore(layout, user, database, dump_path)
        except BootstrapError:
            self.console.print(f"[yellow]Dump file saved at: {dump_path}[/yellow]")
            self.logger.warning("Dump file retained for inspection: %s", dump_path)
            raise

        self._log_report(report)
        self.filesystem_service.remove_file(dump_path)
        self.console.print("[green]UAT database restored to local environment.[/green]")
        return report

    def _log_report(self, report: RestoreReport):
        counts = report.counts
        self.logger.info(
            "Restore errors: ownership=%s already_exists=%s foreign_key=%s missing_extension=%s other=%s",
            counts.get("ownership", 0),
            counts.get("already_exists", 0),
            counts.get("foreign_key", 0),
            counts.get("missing_extension", 0),
            counts.get("other", 0),
        )
        if counts.get("foreign_key"):
            self.logger.warning(
                "%s row(s) skipped by foreign key violations (missing parent rows).",
                counts["foreign_key"],
            )
        for extension_error in report.missing_extensions:
            self.logger.warning("Missing extension: %s", extension_error)
