"""Idempotent install contract every action honours on the target.

The contract checks the component first and only installs when it is
absent, at the wrong version or not working. A reboot-class install
persists a `pending_reboot` marker before rebooting, so running the
contract again after an interruption never reinstalls blindly.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from gpustack.core.exceptions import ExecutionError, VerificationError

from ._models import (
    ContractResult,
    ExecutionState,
    InstallOutcome,
    MarkerStatus,
    StateMarker,
)
from .markers import MarkerStore
from .retry import RetryPolicy

logger = structlog.get_logger(__name__)

S = ExecutionState

TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    S.UNKNOWN: frozenset({S.CHECKING, S.FAILED}),
    S.CHECKING: frozenset(
        {
            S.ALREADY_SATISFIED,
            S.NEEDS_INSTALL,
            S.NEEDS_REPAIR,
            S.PENDING_REBOOT,
            S.FAILED,
        }
    ),
    S.NEEDS_INSTALL: frozenset({S.INSTALLING, S.FAILED}),
    S.NEEDS_REPAIR: frozenset({S.INSTALLING, S.FAILED}),
    S.INSTALLING: frozenset({S.VERIFYING, S.PENDING_REBOOT, S.FAILED}),
    S.VERIFYING: frozenset({S.INSTALLED, S.FAILED}),
    S.ALREADY_SATISFIED: frozenset(),
    S.INSTALLED: frozenset(),
    S.PENDING_REBOOT: frozenset(),
    S.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    pass


class ComponentProbe(Protocol):
    """Operations the contract needs from a component on the target."""

    component: str

    def installed_version(self) -> str | None:
        """Installed version, None when the component is absent."""
        ...

    def verify(self) -> bool:
        """Whether the installed component works."""
        ...

    def install(self) -> InstallOutcome:
        """Install or repair the component.

        Raises:
            TransientError: The install may succeed when retried.
            ExecutionError: The install failed.
        """
        ...

    def reboot(self) -> None: ...


class ExecutionContract:
    probe: ComponentProbe
    markers: MarkerStore
    retry: RetryPolicy

    def __init__(
        self,
        probe: ComponentProbe,
        markers: MarkerStore,
        retry: RetryPolicy | None = None,
    ):
        """Initialize.

        Args:
            probe:
                Component operations on the target.
            markers:
                Store of the install state markers.
            retry:
                Retry policy for transient install failures.
                Defaults to 3 attempts 5 seconds apart.
        """
        self.probe = probe
        self.markers = markers
        self.retry = retry or RetryPolicy()
        self._state = S.UNKNOWN
        self._history: list[ExecutionState] = []

    @property
    def state(self) -> ExecutionState:
        return self._state

    def run(self, version: str | None = None) -> ContractResult:
        """Bring the component to the requested version.

        Args:
            version: Version the component must report, None for any.

        Returns:
            Result ending in installed, already_satisfied,
            pending_reboot or failed.
        """
        self._state = S.UNKNOWN
        self._history = [S.UNKNOWN]
        log = logger.bind(component=self.probe.component)
        try:
            return self._run(version, log)
        except OSError as e:
            error = ExecutionError(str(e), component=self.probe.component)
            return self._fail(error, log)
        except ExecutionError as e:
            return self._fail(e, log)

    def _run(self, version: str | None, log) -> ContractResult:
        component = self.probe.component
        self._transition(S.CHECKING)
        marker = self.markers.read(component)
        installed = self.probe.installed_version()
        log.debug("Checked component", installed=installed, marker=marker)

        if installed is not None and version in (None, installed):
            if self.probe.verify():
                self.markers.write(
                    component,
                    StateMarker.create(MarkerStatus.INSTALLED, installed),
                )
                self._transition(S.ALREADY_SATISFIED)
                log.info("Already satisfied", version=installed)
                return self._result(installed)

        if marker.status is MarkerStatus.PENDING_REBOOT:
            self._transition(S.PENDING_REBOOT)
            log.warning(
                "Reboot pending, a manual or external reboot is required",
                version=marker.version,
            )
            return self._result(marker.version)

        if installed is None:
            self._transition(S.NEEDS_INSTALL)
        else:
            self._transition(S.NEEDS_REPAIR)
            log.info("Repairing", installed=installed, requested=version)

        self._transition(S.INSTALLING)
        outcome = self.retry.call(self.probe.install)
        if outcome is InstallOutcome.REBOOT_REQUIRED:
            self.markers.write(
                component,
                StateMarker.create(MarkerStatus.PENDING_REBOOT, version),
            )
            self.probe.reboot()
            self._transition(S.PENDING_REBOOT)
            log.info("Rebooting to finish the install", version=version)
            return self._result(version)

        self._transition(S.VERIFYING)
        if not self.probe.verify():
            raise VerificationError(
                f"{component} does not work after install",
                component=component,
            )
        installed = self.probe.installed_version() or version
        if version is not None and installed != version:
            log.warning(
                "Installed version differs from the requested one",
                installed=installed,
                requested=version,
            )
        self.markers.write(
            component,
            StateMarker.create(MarkerStatus.INSTALLED, installed),
        )
        self._transition(S.INSTALLED)
        log.info("Installed", version=installed)
        return self._result(installed)

    def _fail(self, error: ExecutionError, log) -> ContractResult:
        self._transition(S.FAILED)
        log.error(
            "Install failed",
            error=str(error),
            exit_code=error.exit_code,
        )
        return self._result(None, error)

    def _transition(self, state: ExecutionState) -> None:
        if state not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Invalid transition {self._state.value} -> {state.value}"
            )
        self._state = state
        self._history.append(state)

    def _result(
        self,
        version: str | None,
        error: ExecutionError | None = None,
    ) -> ContractResult:
        return ContractResult(
            state=self._state,
            version=version,
            history=list(self._history),
            error=error,
        )
