import pytest

from gpustack.core.exceptions import ExecutionError, TransientError
from gpustack.core.manifest import RetrySettings
from gpustack.execution import RetryPolicy


def flaky(failures: list[Exception]):
    calls = []

    def func(value):
        calls.append(value)
        if failures:
            raise failures.pop(0)
        return value

    return func, calls


def test_from_settings():
    policy = RetryPolicy.from_settings(
        RetrySettings.from_dict(
            {"attempts": 5, "delay": 1.5, "backoff": "linear"}
        )
    )
    assert policy == RetryPolicy(attempts=5, delay=1.5, backoff="linear")


@pytest.mark.parametrize("backoff", ["fixed", "linear"])
def test_retries_transient_errors(backoff: str):
    func, calls = flaky([TransientError("a"), TransientError("b")])
    policy = RetryPolicy(attempts=3, delay=0, backoff=backoff)
    assert policy.call(func, "ok") == "ok"
    assert calls == ["ok"] * 3


def test_reraises_last_error():
    errors = [TransientError("first"), TransientError("last")]
    func, calls = flaky(errors)
    with pytest.raises(TransientError, match="last"):
        RetryPolicy(attempts=2, delay=0).call(func, 1)
    assert len(calls) == 2


def test_other_errors_are_not_retried():
    func, calls = flaky([ExecutionError("broken")])
    with pytest.raises(ExecutionError):
        RetryPolicy(delay=0).call(func, 1)
    assert len(calls) == 1
