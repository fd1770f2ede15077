import pytest
from common.fakes import FakeAction, FakeHost, MemoryMarkerStore, fake_actions

from gpustack.core.exceptions import ExecutionTimeoutError, LoadError
from gpustack.execution import (
    ActionStatus,
    Executor,
    MarkerStatus,
    RebootWaiter,
    RetryPolicy,
    TransportMarkerStore,
    TransportResult,
)
from gpustack.provisioning import EnvironmentSpec, TargetContext, resolve

KERNEL = "6.8.0-49-generic"

SPEC = {
    "kernel": {"install": True, "version": KERNEL},
    "containerRuntime": {"install": True},
    "nvidiaContainerToolkit": {"install": True},
    "kubernetes": {"install": True},
}


@pytest.fixture
def host() -> FakeHost:
    host = FakeHost()
    host.versions.update(kernel=KERNEL, kubernetes="v1.31.1")
    return host


def actions(obj: dict = SPEC):
    return fake_actions(resolve(EnvironmentSpec.from_dict(obj)))


def executor(host: FakeHost, markers=None, **kwargs) -> Executor:
    return Executor(
        transport=host,
        markers=markers or MemoryMarkerStore(),
        retry=RetryPolicy(attempts=2, delay=0),
        **kwargs,
    )


def statuses(report) -> list[ActionStatus]:
    return [action.status for action in report.actions]


def test_installs_in_order(host: FakeHost):
    spec = dict(SPEC)
    del spec["kernel"]
    report = executor(host).run(actions(spec))
    assert report.succeeded
    assert [a.component for a in report.actions] == [
        "containerd",
        "container_toolkit",
        "kubernetes",
    ]
    assert statuses(report) == [ActionStatus.INSTALLED] * 3
    installs = [c for step, c in host.calls if step == "install"]
    assert installs == ["containerd", "container_toolkit", "kubernetes"]


def test_second_run_changes_nothing(host: FakeHost):
    spec = dict(SPEC)
    del spec["kernel"]
    markers = MemoryMarkerStore()
    executor(host, markers).run(actions(spec))
    host.calls.clear()

    report = executor(host, markers).run(actions(spec))
    assert statuses(report) == [ActionStatus.ALREADY_SATISFIED] * 3
    assert all(step != "install" for step, _ in host.calls)


def test_fail_fast_skips_the_rest(host: FakeHost):
    host.exit_codes["containerd"] = [11]
    spec = dict(SPEC)
    del spec["kernel"]
    report = executor(host).run(actions(spec))
    assert statuses(report) == [
        ActionStatus.FAILED,
        ActionStatus.SKIPPED,
        ActionStatus.SKIPPED,
    ]
    assert report.failed.component == "containerd"
    assert not report.succeeded
    assert ("install", "container_toolkit") not in host.calls


def test_transient_failure_is_retried(host: FakeHost):
    host.exit_codes["containerd"] = [3]
    report = executor(host).run(
        actions({"containerRuntime": {"install": True}})
    )
    assert statuses(report) == [ActionStatus.INSTALLED]
    assert host.calls.count(("install", "containerd")) == 2


def test_stops_at_pending_reboot(host: FakeHost):
    markers = MemoryMarkerStore()
    report = executor(host, markers).run(actions())
    assert statuses(report) == [
        ActionStatus.PENDING_REBOOT,
        ActionStatus.SKIPPED,
        ActionStatus.SKIPPED,
        ActionStatus.SKIPPED,
    ]
    assert report.pending_reboot
    assert report.failed is None
    assert host.rebooted == ["kernel"]
    assert markers.read("kernel").status is MarkerStatus.PENDING_REBOOT


def test_reboot_waiter_continues(host: FakeHost):
    waits = []
    report = executor(host, reboot_waiter=lambda: waits.append(1)).run(
        actions()
    )
    assert waits == [1]
    assert statuses(report) == [
        ActionStatus.ALREADY_SATISFIED,
        ActionStatus.INSTALLED,
        ActionStatus.INSTALLED,
        ActionStatus.INSTALLED,
    ]
    assert report.succeeded


def test_timeout(host: FakeHost):
    report = executor(host, timeout=0).run(actions())
    assert statuses(report)[0] is ActionStatus.FAILED
    assert "timed out" in report.actions[0].message
    assert set(statuses(report)[1:]) == {ActionStatus.SKIPPED}
    assert host.calls == []


def test_remaining_time_bounds_each_script(host: FakeHost):
    executor(host, timeout=600).run(
        actions({"containerRuntime": {"install": True}})
    )
    assert host.timeouts
    assert all(0 < timeout <= 600 for timeout in host.timeouts)


def test_materialize_error_fails_action(host: FakeHost):
    class BrokenAction(FakeAction):
        def materialize(self, target=None):
            raise LoadError("Cannot read kind config")

    (action,) = resolve(
        EnvironmentSpec.from_dict({"containerRuntime": {"install": True}})
    )
    report = executor(host).run([BrokenAction(**dict(action))])
    assert statuses(report) == [ActionStatus.FAILED]
    assert report.actions[0].message == "Cannot read kind config"


def test_default_markers_live_on_the_target(host: FakeHost):
    target = TargetContext(state_dir="/opt/gpustack/state")
    store = Executor(transport=host, target=target).markers
    assert isinstance(store, TransportMarkerStore)
    assert store.state_dir == "/opt/gpustack/state"


def test_marker_scripts_are_bounded_by_the_timeout(host: FakeHost):
    report = Executor(
        transport=host,
        retry=RetryPolicy(attempts=2, delay=0),
        timeout=600,
    ).run(actions({"containerRuntime": {"install": True}}))
    assert report.succeeded
    steps = ("version", "verify", "install", "reboot")
    marker_timeouts = [
        timeout
        for (step, _), timeout in zip(host.calls, host.timeouts)
        if step not in steps
    ]
    assert len(marker_timeouts) == 2
    assert all(0 < timeout <= 600 for timeout in marker_timeouts)


class FlakyHost(FakeHost):
    def __init__(self, down: int):
        super().__init__()
        self.down = down

    def run(self, script, timeout=None):
        if self.down:
            self.down -= 1
            return TransportResult(exit_code=255)
        return TransportResult(exit_code=0)


def test_reboot_waiter_polls_until_up():
    transport = FlakyHost(down=2)
    RebootWaiter(transport, attempts=5, interval=0)()
    assert transport.down == 0


def test_reboot_waiter_gives_up():
    with pytest.raises(ExecutionTimeoutError):
        RebootWaiter(FlakyHost(down=10), attempts=3, interval=0)()
