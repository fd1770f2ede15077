import pytest
from common.fakes import FakeProbe, MemoryMarkerStore

from gpustack.core.exceptions import (
    DependencyError,
    ExecutionError,
    TransientError,
    VerificationError,
)
from gpustack.execution import (
    TRANSITIONS,
    ExecutionContract,
    ExecutionState,
    InvalidTransitionError,
    MarkerStatus,
    RetryPolicy,
    StateMarker,
)

S = ExecutionState
NO_WAIT = RetryPolicy(attempts=3, delay=0)


def contract(probe: FakeProbe, markers=None) -> ExecutionContract:
    return ExecutionContract(probe, markers or MemoryMarkerStore(), NO_WAIT)


def test_fresh_install():
    probe = FakeProbe(install_version="1.7.23")
    markers = MemoryMarkerStore()
    result = contract(probe, markers).run("1.7.23")
    assert result.state is S.INSTALLED
    assert result.succeeded
    assert result.version == "1.7.23"
    assert result.history == [
        S.UNKNOWN,
        S.CHECKING,
        S.NEEDS_INSTALL,
        S.INSTALLING,
        S.VERIFYING,
        S.INSTALLED,
    ]
    marker = markers.read("containerd")
    assert marker.status is MarkerStatus.INSTALLED
    assert marker.version == "1.7.23"
    assert marker.installed_at is not None


def test_second_run_is_already_satisfied():
    probe = FakeProbe(install_version="1.7.23")
    markers = MemoryMarkerStore()
    contract(probe, markers).run("1.7.23")
    probe.calls.clear()

    result = contract(probe, markers).run("1.7.23")
    assert result.state is S.ALREADY_SATISFIED
    assert result.history == [S.UNKNOWN, S.CHECKING, S.ALREADY_SATISFIED]
    assert "install" not in probe.calls


def test_any_version_satisfies_unpinned_request():
    probe = FakeProbe(installed="1.6.0")
    result = contract(probe).run(None)
    assert result.state is S.ALREADY_SATISFIED
    assert result.version == "1.6.0"


def test_version_mismatch_is_repaired():
    probe = FakeProbe(installed="1.6.0", install_version="1.7.23")
    result = contract(probe).run("1.7.23")
    assert S.NEEDS_REPAIR in result.history
    assert result.state is S.INSTALLED
    assert result.version == "1.7.23"


def test_broken_component_is_repaired():
    probe = FakeProbe(installed="1.7.23", working=False)
    result = contract(probe).run("1.7.23")
    assert S.NEEDS_REPAIR in result.history
    assert result.state is S.INSTALLED
    assert probe.calls.count("install") == 1


def test_reboot_persists_marker_before_reboot():
    probe = FakeProbe(component="kernel", requires_reboot=True)
    markers = MemoryMarkerStore()
    result = contract(probe, markers).run("6.8.0-49-generic")
    assert result.state is S.PENDING_REBOOT
    assert not result.state.succeeded
    assert result.error is None
    assert probe.calls[-1] == "reboot"
    ((component, marker),) = markers.writes
    assert component == "kernel"
    assert marker.status is MarkerStatus.PENDING_REBOOT
    assert marker.version == "6.8.0-49-generic"


def test_pending_reboot_is_not_reinstalled():
    probe = FakeProbe(component="kernel", installed="6.5.0-old")
    markers = MemoryMarkerStore(
        {
            "kernel": StateMarker.create(
                MarkerStatus.PENDING_REBOOT, "6.8.0-49-generic"
            )
        }
    )
    result = contract(probe, markers).run("6.8.0-49-generic")
    assert result.state is S.PENDING_REBOOT
    assert result.history == [S.UNKNOWN, S.CHECKING, S.PENDING_REBOOT]
    assert "install" not in probe.calls


def test_pending_reboot_completes_after_reboot():
    probe = FakeProbe(component="kernel", installed="6.8.0-49-generic")
    markers = MemoryMarkerStore(
        {
            "kernel": StateMarker.create(
                MarkerStatus.PENDING_REBOOT, "6.8.0-49-generic"
            )
        }
    )
    result = contract(probe, markers).run("6.8.0-49-generic")
    assert result.state is S.ALREADY_SATISFIED
    assert markers.read("kernel").status is MarkerStatus.INSTALLED


def test_verification_failure():
    probe = FakeProbe(works_after_install=False)
    markers = MemoryMarkerStore()
    result = contract(probe, markers).run(None)
    assert result.state is S.FAILED
    assert isinstance(result.error, VerificationError)
    assert result.error.exit_code == 5
    assert result.history[-2:] == [S.VERIFYING, S.FAILED]
    assert markers.writes == []


def test_transient_errors_are_retried():
    probe = FakeProbe(
        install_errors=[TransientError("mirror down"), TransientError("")]
    )
    result = contract(probe).run(None)
    assert result.state is S.INSTALLED
    assert probe.calls.count("install") == 3


def test_retry_exhaustion_fails():
    probe = FakeProbe(
        install_errors=[TransientError("mirror down") for _ in range(3)]
    )
    result = contract(probe).run(None)
    assert result.state is S.FAILED
    assert isinstance(result.error, TransientError)
    assert probe.calls.count("install") == 3


def test_permanent_errors_are_not_retried():
    probe = FakeProbe(install_errors=[DependencyError("no curl")])
    result = contract(probe).run(None)
    assert result.state is S.FAILED
    assert isinstance(result.error, DependencyError)
    assert probe.calls.count("install") == 1


def test_marker_errors_fail_the_contract():
    class BrokenMarkers(MemoryMarkerStore):
        def read(self, component):
            raise ExecutionError("cannot read", component=component)

    result = contract(FakeProbe(), BrokenMarkers()).run(None)
    assert result.state is S.FAILED


def test_history_follows_transition_table():
    for probe in (
        FakeProbe(),
        FakeProbe(installed="1.0"),
        FakeProbe(installed="1.0", working=False),
        FakeProbe(requires_reboot=True),
        FakeProbe(works_after_install=False),
    ):
        history = contract(probe).run("1.7.0").history
        for current, following in zip(history, history[1:]):
            assert following in TRANSITIONS[current]


def test_terminal_states_have_no_transitions():
    for state in (
        S.INSTALLED,
        S.ALREADY_SATISFIED,
        S.PENDING_REBOOT,
        S.FAILED,
    ):
        assert TRANSITIONS[state] == frozenset()
    assert set(TRANSITIONS) == set(ExecutionState)


def test_invalid_transition():
    execution = contract(FakeProbe())
    with pytest.raises(InvalidTransitionError):
        execution._transition(S.INSTALLED)
