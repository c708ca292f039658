import json
import os

import pytest

from devbootstrap.core import DevBootstrapper
from devbootstrap.errors import CloneFailed, ConfigInvalid
from devbootstrap.models import (
    ResourceApplicationError,
    ResourceSuccess,
    RestoreReport,
    TenantExportReport,
)
from devbootstrap.services.tenant_export import TenantExportService


class FakeWorkstation:
    home = "/Users/ada"

    def __init__(self):
        self.actions = []

    def which(self, command):
        return f"/usr/local/bin/{command}"

    def is_macos(self):
        return True

    def require_macos(self):
        self.actions.append("require_macos")
        return "macOS detected"

    def free_disk_gb(self):
        return 120

    def git_identity_configured(self):
        return True

    def configure_git_identity(self, name, email):
        self.actions.append("configure_git_identity")
        return f"Git identity set to {name} <{email}>"

    def signing_configured(self):
        return True

    def setup_commit_signing(self, _email):
        self.actions.append("setup_commit_signing")
        return "Commit signing configured"

    def ssh_config_persisted(self):
        return True

    def persist_ssh_config(self):
        self.actions.append("persist_ssh_config")
        return "SSH config updated"

    def github_authenticated(self):
        return True

    def authenticate_github(self, _token):
        self.actions.append("authenticate_github")
        return "GitHub CLI authenticated"

    def signing_key_uploaded(self):
        return True

    def upload_signing_key(self):
        self.actions.append("upload_signing_key")
        return "Signing key uploaded"

    def frontend_deps_installed(self, _frontend_dir):
        return True

    def install_frontend_deps(self, _frontend_dir, use_pnpm=False):
        self.actions.append("install_frontend_deps")
        return "Frontend dependencies installed"

    def frontend_env_configured(self):
        return True

    def configure_frontend_env(self, _frontend_dir):
        self.actions.append("configure_frontend_env")
        return "FRONTEND_ENV_PATH exported"


class FakeToolInstaller:
    def brew_path(self):
        return "/opt/homebrew/bin/brew"

    def ensure_homebrew(self):
        return "/opt/homebrew/bin/brew"

    def missing(self, _tools):
        return []

    def ensure(self, _tools):
        return [], []

    def is_present(self, _tool):
        return True

    def install(self, _tool):
        return None


class FakeDockerRuntime:
    def host_networking_enabled(self, _settings_file):
        return True

    def enable_host_networking(self, _settings_file):
        return "Host networking enabled"

    def is_daemon_running(self):
        return True

    def start_desktop(self):
        return None

    def wait_for_daemon(self, max_retries=60, interval_seconds=2.0):
        return None


class FakeRepositorySync:
    def __init__(self, synced=True):
        self.synced = synced

    def all_synced(self, _repos):
        return self.synced

    def sync(self, repos):
        raise CloneFailed(f"Could not clone {repos[0].name}")

    def verify(self, _repos):
        return None


class FakeCommandRunner:
    def __init__(self):
        self.calls = []

    def run(self, cmd, check=True, cwd=None, **_kwargs):
        self.calls.append((cmd, cwd))


class FakeDatabaseService:
    def __init__(self):
        self.clones = 0

    def clone(self, config, layout):
        self.clones += 1
        return RestoreReport(
            counts={"ownership": 4, "already_exists": 0, "foreign_key": 2, "missing_extension": 0, "other": 0},
            log_path=os.path.join(layout.logs_dir, "db-restore.log"),
        )


class FakeTenantExport:
    summarize = staticmethod(TenantExportService.summarize)

    def __init__(self, failed_users=False):
        self.failed_users = failed_users
        self.calls = []

    def export(self, base_url, service_user, service_key, export_root):
        self.calls.append((base_url, service_user, export_root))
        users = ResourceSuccess("users", 200, '{"result": []}')
        if self.failed_users:
            users = ResourceApplicationError("users", 401, '{"message": "unauthorized"}', "HTTP 401")
        return TenantExportReport(
            export_dir=os.path.join(export_root, "zitadel_export_test"),
            outcomes=[
                ResourceSuccess("organization", 200, '{"org": {"name": "UAT"}}'),
                users,
                ResourceSuccess("projects", 200, '{"result": []}'),
            ],
        )


class FakeLocalIdentity:
    def __init__(self):
        self.calls = []

    def create_test_user(self, **kwargs):
        self.calls.append(kwargs)
        return f"Test user {kwargs['email']} created (u-1)"


UAT_ZITADEL = {
    "UAT_ZITADEL_URL": "https://uat.example.com",
    "UAT_ZITADEL_SERVICE_USER": "svc",
    "UAT_ZITADEL_SERVICE_KEY": "key",
}


def _write_config(tmp_path, **extra):
    values = {"GIT_USER_NAME": "Ada Lovelace", "GIT_USER_EMAIL": "ada@example.com"}
    values.update(extra)
    config_file = tmp_path / "setup.env"
    config_file.write_text("".join(f"{key}={value}\n" for key, value in values.items()), encoding="utf-8")
    (tmp_path / "backend").mkdir(exist_ok=True)
    (tmp_path / "frontend").mkdir(exist_ok=True)
    return str(config_file)


def _build(tmp_path, command_runner=None, **kwargs):
    bootstrapper = DevBootstrapper(config_path=str(tmp_path / "setup.env"), project_root=str(tmp_path), **kwargs)
    bootstrapper.workstation_service = FakeWorkstation()
    bootstrapper.tool_installer = FakeToolInstaller()
    bootstrapper.docker_runtime_service = FakeDockerRuntime()
    bootstrapper.repository_sync = FakeRepositorySync()
    bootstrapper.command_runner = command_runner or FakeCommandRunner()
    return bootstrapper


def _statuses(bootstrapper):
    return {outcome.name: outcome.status for outcome in bootstrapper.report.outcomes}


def test_missing_required_key_fails_before_any_step(tmp_path):
    config_file = tmp_path / "setup.env"
    config_file.write_text("GIT_USER_NAME=Ada\n", encoding="utf-8")

    with pytest.raises(ConfigInvalid, match="GIT_USER_EMAIL"):
        DevBootstrapper(config_path=str(config_file), project_root=str(tmp_path))

    assert not (tmp_path / ".devbootstrap").exists()


def test_invalid_mode_is_rejected(tmp_path):
    _write_config(tmp_path, BOOTSTRAP_MODE="staging")

    with pytest.raises(ConfigInvalid, match="staging"):
        DevBootstrapper(config_path=str(tmp_path / "setup.env"), project_root=str(tmp_path))


def test_second_run_skips_every_step(tmp_path):
    _write_config(tmp_path)
    runner = FakeCommandRunner()

    first = _build(tmp_path, command_runner=runner)
    assert first.run() == 0
    assert _statuses(first)["run_local_bootstrap"] == "ok"
    assert runner.calls == [(["task", "bootstrap"], str(tmp_path / "backend"))]

    second = _build(tmp_path, command_runner=runner)
    assert second.run() == 0

    assert set(_statuses(second).values()) == {"skipped"}
    assert len(runner.calls) == 1
    report = json.loads((tmp_path / ".devbootstrap" / "run-report.json").read_text(encoding="utf-8"))
    assert report["status"] == "success"
    assert report["metadata"]["mode"] == "local"


def test_force_bootstrap_reruns_destructive_step(tmp_path):
    _write_config(tmp_path)
    runner = FakeCommandRunner()
    assert _build(tmp_path, command_runner=runner).run() == 0

    forced = _build(tmp_path, command_runner=runner, force_bootstrap=True)

    assert forced.run() == 0
    assert _statuses(forced)["run_local_bootstrap"] == "ok"
    assert len(runner.calls) == 2


def test_fatal_step_failure_stops_run(tmp_path):
    _write_config(tmp_path)
    bootstrapper = _build(tmp_path)
    bootstrapper.repository_sync = FakeRepositorySync(synced=False)

    assert bootstrapper.run() == 1

    statuses = _statuses(bootstrapper)
    assert statuses["sync_repositories"] == "failed"
    assert "install_frontend_deps" not in statuses
    assert bootstrapper.report.report["status"] == "failed"
    assert bootstrapper.report.report["error"] == "Step 'sync_repositories' failed"


def test_uat_mode_degraded_export_is_warned(tmp_path):
    _write_config(tmp_path, BOOTSTRAP_MODE="uat", **UAT_ZITADEL)
    bootstrapper = _build(tmp_path, assume_yes=True, export_dir=str(tmp_path / "exports"))
    database = FakeDatabaseService()
    export = FakeTenantExport(failed_users=True)
    bootstrapper.database_service = database
    bootstrapper.tenant_export_service = export

    assert bootstrapper.run() == 0

    statuses = _statuses(bootstrapper)
    assert statuses["clone_uat_database"] == "ok"
    assert statuses["export_identity_tenant"] == "warned"
    assert "run_local_bootstrap" not in statuses
    assert database.clones == 1
    export_outcome = [o for o in bootstrapper.report.outcomes if o.name == "export_identity_tenant"][0]
    assert "users" in export_outcome.message
    assert bootstrapper.state_service.is_completed("uat_database_clone")
    assert not bootstrapper.state_service.is_completed("identity_tenant_export")


def test_uat_mode_second_run_skips_every_step(tmp_path):
    _write_config(tmp_path, BOOTSTRAP_MODE="uat", **UAT_ZITADEL)
    database = FakeDatabaseService()
    export = FakeTenantExport()

    first = _build(tmp_path, assume_yes=True, export_dir=str(tmp_path / "exports"))
    first.database_service = database
    first.tenant_export_service = export
    assert first.run() == 0
    assert _statuses(first)["export_identity_tenant"] == "ok"

    second = _build(tmp_path, confirm=lambda _prompt: False, export_dir=str(tmp_path / "exports"))
    second.database_service = database
    second.tenant_export_service = export
    assert second.run() == 0

    assert set(_statuses(second).values()) == {"skipped"}
    assert "confirm_uat_clone" in _statuses(second)
    assert second.workstation_service.actions == []
    assert database.clones == 1
    assert len(export.calls) == 1


def test_uat_mode_without_service_account_warns_with_instructions(tmp_path):
    _write_config(tmp_path, UAT_ZITADEL_URL="https://uat.example.com")
    bootstrapper = _build(tmp_path, mode="uat", assume_yes=True)
    bootstrapper.database_service = FakeDatabaseService()
    export = FakeTenantExport()
    bootstrapper.tenant_export_service = export

    assert bootstrapper.run() == 0

    outcome = [o for o in bootstrapper.report.outcomes if o.name == "export_identity_tenant"][0]
    assert outcome.status == "warned"
    assert "Manual export/import required" in outcome.message
    assert export.calls == []


def test_uat_service_account_without_url_is_fatal(tmp_path):
    _write_config(tmp_path, UAT_ZITADEL_SERVICE_USER="svc", UAT_ZITADEL_SERVICE_KEY="key")
    bootstrapper = _build(tmp_path, mode="uat", assume_yes=True)
    bootstrapper.database_service = FakeDatabaseService()
    bootstrapper.tenant_export_service = FakeTenantExport()

    assert bootstrapper.run() == 1
    assert _statuses(bootstrapper)["export_identity_tenant"] == "failed"


def test_declining_uat_clone_cancels_cleanly(tmp_path):
    _write_config(tmp_path, CREATE_TEST_USER="true", **UAT_ZITADEL)
    bootstrapper = _build(tmp_path, mode="uat", confirm=lambda _prompt: False)
    database = FakeDatabaseService()
    export = FakeTenantExport()
    identity = FakeLocalIdentity()
    bootstrapper.database_service = database
    bootstrapper.tenant_export_service = export
    bootstrapper.local_identity_service = identity

    assert bootstrapper.run() == 0

    statuses = _statuses(bootstrapper)
    for name in ("confirm_uat_clone", "clone_uat_database", "export_identity_tenant", "create_local_test_user"):
        assert statuses[name] == "skipped"
    assert "cancelled" in bootstrapper.report.outcomes[-4].message
    assert database.clones == 0
    assert export.calls == []
    assert identity.calls == []
    assert bootstrapper.report.report["status"] == "success"
    assert not bootstrapper.state_service.is_completed("uat_database_clone")


def test_test_user_step_only_when_requested(tmp_path):
    _write_config(tmp_path, CREATE_TEST_USER="true")
    bootstrapper = _build(tmp_path, mode="uat")

    names = [step.name for step in bootstrapper.build_steps()]

    assert names[-1] == "create_local_test_user"
    assert "run_local_bootstrap" not in names

    _write_config(tmp_path)
    plain = _build(tmp_path, mode="uat")
    assert "create_local_test_user" not in [step.name for step in plain.build_steps()]


def test_test_user_falls_back_to_default_credentials(tmp_path):
    _write_config(tmp_path, CREATE_TEST_USER="true", LOCAL_ZITADEL_ADMIN_TOKEN="admin-pat")
    bootstrapper = _build(tmp_path, mode="uat")
    identity = FakeLocalIdentity()
    bootstrapper.local_identity_service = identity

    message = bootstrapper.create_local_test_user()

    assert message == "Test user test.user@local.dev created (u-1)"
    assert identity.calls[0]["email"] == "test.user@local.dev"
    assert identity.calls[0]["password"] == "TestPassword123!"
    assert identity.calls[0]["admin_token"] == "admin-pat"
    assert bootstrapper.state_service.is_completed("local_test_user")


def test_test_user_uses_configured_credentials(tmp_path):
    _write_config(
        tmp_path,
        CREATE_TEST_USER="true",
        TEST_USER_EMAIL="qa@example.com",
        TEST_USER_PASSWORD="Sup3r-Secret!",
    )
    bootstrapper = _build(tmp_path, mode="uat")
    identity = FakeLocalIdentity()
    bootstrapper.local_identity_service = identity

    bootstrapper.create_local_test_user()

    assert identity.calls[0]["email"] == "qa@example.com"
    assert identity.calls[0]["password"] == "Sup3r-Secret!"
