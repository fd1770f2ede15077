import shutil

import pytest

from gpustack.core.manifest import RetrySettings
from gpustack.execution import LocalTransport
from gpustack.scripts._common import prelude

pytestmark = pytest.mark.skipif(
    shutil.which("bash") is None, reason="bash is not available"
)

# `sleep` is shadowed so retries only record their delay.
SLEEP_STUB = 'sleep() { echo "slept $1"; }\n'


def run(retry: RetrySettings, body: str) -> list[str]:
    script = prelude("/tmp/gpustack-test-state", retry) + SLEEP_STUB + body
    result = LocalTransport().run(script, timeout=30)
    assert result.ok, result.output
    return [
        line
        for line in result.output.splitlines()
        if line.startswith(("slept ", "rc="))
    ]


@pytest.mark.parametrize(
    "backoff,delays",
    [
        ("fixed", ["5", "5", "5"]),
        ("linear", ["5", "10", "15"]),
    ],
)
def test_retry_delays(backoff: str, delays: list[str]):
    lines = run(
        RetrySettings(delay=5, backoff=backoff),
        'rc=0\ngpustack_retry 4 demo false || rc=$?\necho "rc=$rc"\n',
    )
    assert lines == [f"slept {delay}" for delay in delays] + ["rc=3"]


def test_retry_stops_on_success():
    lines = run(
        RetrySettings(delay=2),
        "calls=0\n"
        "flaky() { calls=$((calls + 1)); [[ $calls -ge 3 ]]; }\n"
        'gpustack_retry 5 demo flaky\necho "rc=$?"\n',
    )
    assert lines == ["slept 2", "slept 2", "rc=0"]


def test_fractional_delay_rounds_up():
    assert "export GPUSTACK_RETRY_DELAY=1\n" in prelude(
        retry=RetrySettings(delay=0.5)
    )
