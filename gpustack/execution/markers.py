from __future__ import annotations

import os
import shlex
import time
from typing import Protocol

from gpustack.core.exceptions import ExecutionError, ExecutionTimeoutError
from gpustack.core.manifest import DEFAULT_STATE_DIR

from ._models import StateMarker
from .transports import Transport


class MarkerStore(Protocol):
    def read(self, component: str) -> StateMarker: ...

    def write(self, component: str, marker: StateMarker) -> None: ...


class FileMarkerStore:
    """State markers in a local directory, one file per component."""

    state_dir: str

    def __init__(self, state_dir: str = DEFAULT_STATE_DIR):
        self.state_dir = state_dir

    def path(self, component: str) -> str:
        return os.path.join(self.state_dir, f"{component}.state")

    def read(self, component: str) -> StateMarker:
        path = self.path(component)
        if not os.path.isfile(path):
            return StateMarker()
        with open(path, "r", encoding="utf-8") as f:
            return StateMarker.parse(f.read())

    def write(self, component: str, marker: StateMarker) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        path = self.path(component)
        temp_path = f"{path}.tmp"
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(marker.serialize())
        os.replace(temp_path, path)

    def list(self) -> dict[str, StateMarker]:
        if not os.path.isdir(self.state_dir):
            return {}
        markers = {}
        for name in sorted(os.listdir(self.state_dir)):
            if name.endswith(".state"):
                component = name[: -len(".state")]
                markers[component] = self.read(component)
        return markers


class TransportMarkerStore:
    """State markers kept on the target, read and written over a
    transport.

    With a deadline, every marker script gets the time left until it
    as its timeout and nothing runs once it has passed.
    """

    transport: Transport
    state_dir: str
    deadline: float | None

    def __init__(
        self,
        transport: Transport,
        state_dir: str = DEFAULT_STATE_DIR,
        deadline: float | None = None,
    ):
        self.transport = transport
        self.state_dir = state_dir
        self.deadline = deadline

    def until(self, deadline: float | None) -> TransportMarkerStore:
        """Same markers, bounded by a `time.monotonic` deadline."""
        return TransportMarkerStore(self.transport, self.state_dir, deadline)

    def path(self, component: str) -> str:
        return shlex.quote(f"{self.state_dir}/{component}.state")

    def read(self, component: str) -> StateMarker:
        path = self.path(component)
        result = self._run(f"if [ -f {path} ]; then cat {path}; fi\n")
        if not result.ok:
            raise ExecutionError(
                f"Cannot read state marker {path}",
                component=component,
                exit_code=result.exit_code,
                output=result.output,
            )
        return StateMarker.parse(result.output)

    def write(self, component: str, marker: StateMarker) -> None:
        state_dir = shlex.quote(self.state_dir)
        content = shlex.quote(marker.serialize())
        result = self._run(
            f"sudo mkdir -p {state_dir}\n"
            f"printf '%s' {content} | "
            f"sudo tee {self.path(component)} > /dev/null\n"
        )
        if not result.ok:
            raise ExecutionError(
                f"Cannot write state marker for {component}",
                component=component,
                exit_code=result.exit_code,
                output=result.output,
            )

    def _run(self, script: str):
        timeout = None
        if self.deadline is not None:
            timeout = self.deadline - time.monotonic()
            if timeout <= 0:
                raise ExecutionTimeoutError(
                    "Deadline passed before the state marker script ran"
                )
        return self.transport.run(script, timeout=timeout)
