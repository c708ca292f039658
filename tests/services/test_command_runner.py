import sys

import pytest

from devbootstrap.errors import BootstrapError, CommandFailed
from devbootstrap.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(BootstrapError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_failure_carries_returncode_and_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandFailed) as excinfo:
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('role \"ada\" does not exist\\n'); sys.exit(3)"],
            check=True,
            capture_output=True,
        )

    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == 'role "ada" does not exist'
    assert "Command failed (3)" in str(excinfo.value)


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandFailed, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_reports_missing_command():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(BootstrapError, match="Required command not found"):
        runner.run(["devbootstrap-command-that-does-not-exist"], check=True)


def test_command_runner_merges_env_and_feeds_input(tmp_path):
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [
            sys.executable,
            "-c",
            "import os, sys; print(os.environ['PGPASSWORD'] + ':' + sys.stdin.read().strip())",
        ],
        capture_output=True,
        env={"PGPASSWORD": "secret"},
        input_text="token\n",
        cwd=str(tmp_path),
    )

    assert result.stdout.strip() == "secret:token"

