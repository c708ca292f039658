import json
import subprocess

import pytest

from devbootstrap.errors import EngineNotReady, ManualActionRequired
from devbootstrap.services.docker_runtime import DockerRuntimeService


class DummyLogger:
    def _log(self, *_args, **_kwargs):
        return None

    debug = info = warning = _log


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeSubprocess:
    CalledProcessError = subprocess.CalledProcessError

    def __init__(self, v2_available=True):
        self.v2_available = v2_available
        self.calls = []

    def run(self, cmd, check=False, capture_output=False):
        self.calls.append(cmd)
        if cmd[:2] == ["docker", "compose"] and not self.v2_available:
            raise subprocess.CalledProcessError(1, cmd)
        return subprocess.CompletedProcess(cmd, 0)


def _service(run_cmd, subprocess_module=None):
    return DockerRuntimeService(
        logger=DummyLogger(),
        console=DummyConsole(),
        run_cmd=run_cmd,
        subprocess_module=subprocess_module or FakeSubprocess(),
        sleep=lambda _seconds: None,
    )


def test_compose_command_falls_back_to_v1_and_is_cached():
    fake_subprocess = FakeSubprocess(v2_available=False)
    service = _service(lambda *_args, **_kwargs: None, fake_subprocess)

    assert service.get_docker_compose_cmd() == ["docker-compose"]
    assert service.get_docker_compose_cmd() == ["docker-compose"]
    assert len(fake_subprocess.calls) == 2


def test_wait_for_daemon_raises_engine_not_ready():
    def failing_run_cmd(cmd, **_kwargs):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")

    with pytest.raises(EngineNotReady, match="Docker did not become ready after 6 seconds"):
        _service(failing_run_cmd).wait_for_daemon(max_retries=3, interval_seconds=2.0)


def test_ensure_database_engine_starts_container_then_polls():
    calls = []
    readiness = iter([1, 1, 0])

    def fake_run_cmd(cmd, check=False, capture_output=False, cwd=None, **_kwargs):
        calls.append(cmd)
        if "ps" in cmd:
            return subprocess.CompletedProcess(cmd, 0, stdout="NAME   STATUS\n", stderr="")
        if "pg_isready" in cmd:
            return subprocess.CompletedProcess(cmd, next(readiness), stdout="", stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    _service(fake_run_cmd).ensure_database_engine(cwd="/work/backend", user="workbench_owner")

    assert ["docker", "compose", "up", "-d", "postgres"] in calls
    assert sum(1 for cmd in calls if "pg_isready" in cmd) == 3


def test_ensure_database_engine_reuses_running_container():
    calls = []

    def fake_run_cmd(cmd, check=False, capture_output=False, cwd=None, **_kwargs):
        calls.append(cmd)
        if "ps" in cmd:
            return subprocess.CompletedProcess(cmd, 0, stdout="postgres   Up 3 minutes\n", stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    _service(fake_run_cmd).ensure_database_engine(cwd="/work/backend", user="workbench_owner")

    assert not any("up" in cmd for cmd in calls)


def test_enable_host_networking_backs_up_and_sets_flag(tmp_path):
    settings_file = tmp_path / "settings-store.json"
    settings_file.write_text(json.dumps({"AutoStart": True}), encoding="utf-8")

    def fake_run_cmd(cmd, **_kwargs):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")

    service = _service(fake_run_cmd)
    assert service.host_networking_enabled(str(settings_file)) is False

    service.enable_host_networking(str(settings_file))

    assert service.host_networking_enabled(str(settings_file)) is True
    backup = json.loads((tmp_path / "settings-store.json.backup").read_text(encoding="utf-8"))
    assert backup == {"AutoStart": True}


def test_enable_host_networking_requires_settings_file(tmp_path):
    service = _service(lambda *_args, **_kwargs: None)

    with pytest.raises(ManualActionRequired, match="enable host networking manually"):
        service.enable_host_networking(str(tmp_path / "missing.json"))
