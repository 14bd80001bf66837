"""Tests for retry helper."""

from unittest.mock import MagicMock

import pytest

from devspawn.utils.retry import retry_call


def test_returns_first_success():
    func = MagicMock(side_effect=[OSError("flaky"), "ok"])
    sleeps = []
    assert retry_call(func, attempts=3, delay=1, sleep=sleeps.append) == "ok"
    assert func.call_count == 2
    assert sleeps == [1]


def test_reraises_after_last_attempt():
    func = MagicMock(side_effect=OSError("down"))
    sleeps = []
    with pytest.raises(OSError):
        retry_call(func, attempts=3, delay=2, backoff=2, sleep=sleeps.append)
    assert func.call_count == 3
    assert sleeps == [2, 4]


def test_does_not_retry_other_errors():
    func = MagicMock(side_effect=KeyError("nope"))
    with pytest.raises(KeyError):
        retry_call(func, attempts=3, delay=0, retry_on=(OSError,), sleep=lambda s: None)
    assert func.call_count == 1


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        retry_call(lambda: None, attempts=0, delay=0)
