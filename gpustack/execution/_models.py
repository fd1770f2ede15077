from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from gpustack.core.data_model import DataModel, FrozenDataModel
from gpustack.core.exceptions import ExecutionError


class ExecutionState(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    ALREADY_SATISFIED = "already_satisfied"
    NEEDS_REPAIR = "needs_repair"
    NEEDS_INSTALL = "needs_install"
    INSTALLING = "installing"
    VERIFYING = "verifying"
    INSTALLED = "installed"
    PENDING_REBOOT = "pending_reboot"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self in (
            ExecutionState.INSTALLED,
            ExecutionState.ALREADY_SATISFIED,
        )


class MarkerStatus(str, Enum):
    ABSENT = "absent"
    PENDING_REBOOT = "pending_reboot"
    INSTALLED = "installed"


class StateMarker(FrozenDataModel):
    """Install state of one component on the target.

    Stored as `key=value` lines: `status`, `version` and
    `installed_at`.
    """

    status: MarkerStatus = MarkerStatus.ABSENT
    version: str | None = None
    installed_at: str | None = None

    @staticmethod
    def create(
        status: MarkerStatus,
        version: str | None = None,
    ) -> StateMarker:
        return StateMarker(
            status=status,
            version=version,
            installed_at=datetime.now(timezone.utc).isoformat(
                timespec="seconds"
            ),
        )

    @staticmethod
    def parse(text: str) -> StateMarker:
        values: dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key.strip()] = value.strip()
        status = values.get("status", MarkerStatus.ABSENT.value)
        if status not in MarkerStatus._value2member_map_:
            status = MarkerStatus.ABSENT.value
        return StateMarker(
            status=MarkerStatus(status),
            version=values.get("version") or None,
            installed_at=values.get("installed_at") or None,
        )

    def serialize(self) -> str:
        return (
            f"status={self.status.value}\n"
            f"version={self.version or ''}\n"
            f"installed_at={self.installed_at or ''}\n"
        )


class InstallOutcome(str, Enum):
    """Result of a successful install step."""

    DONE = "done"
    REBOOT_REQUIRED = "reboot_required"


class ContractResult(DataModel):
    """Outcome of running the install contract for one component.

    Attributes:
        state: Final state, one of installed, already_satisfied,
            pending_reboot or failed.
        version: Installed version when known.
        history: Every state the contract passed through, in order.
        error: Error that caused the failed state.
    """

    state: ExecutionState
    version: str | None = None
    history: list[ExecutionState] = []
    error: ExecutionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state.succeeded


class ActionStatus(str, Enum):
    INSTALLED = "installed"
    ALREADY_SATISFIED = "already_satisfied"
    PENDING_REBOOT = "pending_reboot"
    FAILED = "failed"
    SKIPPED = "skipped"


class ActionReport(DataModel):
    order_index: int
    kind: str
    component: str
    status: ActionStatus
    version: str | None = None
    message: str | None = None
    duration: float = 0.0


class ProvisionReport(DataModel):
    """Result of running an action list against a target."""

    actions: list[ActionReport] = []

    @property
    def succeeded(self) -> bool:
        return all(
            report.status
            in (ActionStatus.INSTALLED, ActionStatus.ALREADY_SATISFIED)
            for report in self.actions
        )

    @property
    def pending_reboot(self) -> bool:
        return any(
            report.status == ActionStatus.PENDING_REBOOT
            for report in self.actions
        )

    @property
    def failed(self) -> ActionReport | None:
        for report in self.actions:
            if report.status == ActionStatus.FAILED:
                return report
        return None
