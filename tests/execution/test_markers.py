import time

import pytest

from gpustack.core.exceptions import ExecutionError, ExecutionTimeoutError
from gpustack.execution import (
    FileMarkerStore,
    MarkerStatus,
    StateMarker,
    TransportMarkerStore,
    TransportResult,
)


def test_file_round_trip(tmp_path):
    store = FileMarkerStore(str(tmp_path / "state"))
    assert store.read("kernel") == StateMarker()
    assert store.list() == {}

    marker = StateMarker.create(MarkerStatus.PENDING_REBOOT, "6.8.0-49")
    store.write("kernel", marker)
    assert store.read("kernel") == marker
    assert (tmp_path / "state" / "kernel.state").read_text() == (
        "status=pending_reboot\n"
        "version=6.8.0-49\n"
        f"installed_at={marker.installed_at}\n"
    )

    store.write("kernel", StateMarker.create(MarkerStatus.INSTALLED, "6.8"))
    store.write("containerd", StateMarker.create(MarkerStatus.INSTALLED))
    markers = store.list()
    assert list(markers) == ["containerd", "kernel"]
    assert markers["kernel"].status is MarkerStatus.INSTALLED
    assert markers["containerd"].version is None


def test_parse_tolerates_unknown_content():
    marker = StateMarker.parse("garbage\nstatus=exploded\nversion=\n")
    assert marker.status is MarkerStatus.ABSENT
    assert marker.version is None


class RecordingTransport:
    def __init__(self, output: str = "", exit_code: int = 0):
        self.output = output
        self.exit_code = exit_code
        self.scripts: list[str] = []
        self.timeouts: list[float | None] = []

    def run(self, script: str, timeout: float | None = None):
        self.scripts.append(script)
        self.timeouts.append(timeout)
        return TransportResult(exit_code=self.exit_code, output=self.output)


def test_transport_store():
    transport = RecordingTransport(output="status=installed\nversion=1.7\n")
    store = TransportMarkerStore(transport, "/var/lib/gpustack/state")
    marker = store.read("containerd")
    assert marker.status is MarkerStatus.INSTALLED
    assert marker.version == "1.7"
    assert "/var/lib/gpustack/state/containerd.state" in transport.scripts[0]

    store.write("containerd", marker)
    assert "sudo tee /var/lib/gpustack/state/containerd.state" in (
        transport.scripts[1]
    )
    assert "status=installed" in transport.scripts[1]


def test_transport_store_errors():
    store = TransportMarkerStore(RecordingTransport(exit_code=1))
    with pytest.raises(ExecutionError):
        store.read("containerd")
    with pytest.raises(ExecutionError):
        store.write("containerd", StateMarker())


def test_transport_store_deadline():
    transport = RecordingTransport()
    store = TransportMarkerStore(transport)
    store.read("containerd")
    assert transport.timeouts == [None]

    store.until(time.monotonic() + 60).read("containerd")
    assert 0 < transport.timeouts[1] <= 60

    expired = store.until(time.monotonic() - 1)
    with pytest.raises(ExecutionTimeoutError):
        expired.write("containerd", StateMarker())
    assert len(transport.scripts) == 2
