import pytest

from devbootstrap.errors import EngineNotReady, RestoreFatal
from devbootstrap.services.retry import wait_until


def test_wait_until_returns_succeeding_attempt():
    answers = iter([False, False, True])
    sleeps = []

    attempt = wait_until(
        lambda: next(answers),
        attempts=5,
        interval_seconds=2.0,
        error_message="never ready",
        sleep=sleeps.append,
    )

    assert attempt == 3
    assert sleeps == [2.0, 2.0]


def test_wait_until_raises_after_exhausting_attempts_without_trailing_sleep():
    sleeps = []
    waited = []

    with pytest.raises(EngineNotReady, match="never ready"):
        wait_until(
            lambda: False,
            attempts=3,
            interval_seconds=1.0,
            error_message="never ready",
            on_wait=waited.append,
            sleep=sleeps.append,
        )

    assert sleeps == [1.0, 1.0]
    assert waited == [1, 2]


def test_wait_until_uses_custom_error_class():
    with pytest.raises(RestoreFatal):
        wait_until(
            lambda: False,
            attempts=1,
            interval_seconds=0,
            error_message="unreachable",
            error_cls=RestoreFatal,
            sleep=lambda _seconds: None,
        )
