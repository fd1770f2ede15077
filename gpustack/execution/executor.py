from __future__ import annotations

import time
from typing import Callable

import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from gpustack.core.exceptions import (
    BaseError,
    ExecutionError,
    ExecutionTimeoutError,
)
from gpustack.provisioning.action import ResolvedAction, TargetContext

from ._models import (
    ActionReport,
    ActionStatus,
    ContractResult,
    ExecutionState,
    ProvisionReport,
)
from .markers import MarkerStore, TransportMarkerStore
from .probe import CommandProbe
from .retry import RetryPolicy
from .state_machine import ExecutionContract
from .transports import Transport, TransportResult

logger = structlog.get_logger(__name__)

REBOOT_WAIT_ATTEMPTS = 30
REBOOT_WAIT_INTERVAL = 10.0

STATUS_BY_STATE = {
    ExecutionState.INSTALLED: ActionStatus.INSTALLED,
    ExecutionState.ALREADY_SATISFIED: ActionStatus.ALREADY_SATISFIED,
    ExecutionState.PENDING_REBOOT: ActionStatus.PENDING_REBOOT,
    ExecutionState.FAILED: ActionStatus.FAILED,
}


class RebootWaiter:
    """Wait until the target answers again after a reboot.

    Args:
        transport: Transport to the target.
        attempts: Connection attempts before giving up.
        interval: Seconds between attempts, also waited before the
            first one so the host has time to go down.
    """

    def __init__(
        self,
        transport: Transport,
        attempts: int = REBOOT_WAIT_ATTEMPTS,
        interval: float = REBOOT_WAIT_INTERVAL,
    ):
        self.transport = transport
        self.attempts = attempts
        self.interval = interval

    def __call__(self) -> None:
        time.sleep(self.interval)
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.interval),
            retry=(
                retry_if_exception_type(ExecutionError)
                | retry_if_result(lambda result: not result.ok)
            ),
            retry_error_callback=_reboot_timed_out,
        )
        retrying(self._ping)
        logger.info("Target is back after reboot")

    def _ping(self) -> TransportResult:
        return self.transport.run("true\n", timeout=self.interval)


def _reboot_timed_out(retry_state) -> None:
    raise ExecutionTimeoutError(
        f"Target did not come back after {retry_state.attempt_number} "
        "attempts"
    )


class Executor:
    """Run resolved actions on a target, one at a time in order.

    The run stops at the first failed action and reports the remaining
    ones as skipped. It also stops at an action waiting for a reboot,
    unless a reboot waiter is given, in which case the executor waits
    for the target and runs that action again.
    """

    def __init__(
        self,
        transport: Transport,
        target: TargetContext | None = None,
        markers: MarkerStore | None = None,
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
        reboot_waiter: Callable[[], None] | None = None,
    ):
        """Initialize.

        Args:
            transport:
                Transport to the target host.
            target:
                Facts about the target passed to the script renderer.
            markers:
                State marker store. Defaults to markers kept on the
                target under the target's state directory.
            retry:
                Retry policy for transient install failures.
            timeout:
                Seconds the whole run may take, None for no limit.
            reboot_waiter:
                Called after a reboot-class install to wait for the
                target to come back.
        """
        self.transport = transport
        self.target = target or TargetContext()
        self.markers = markers or TransportMarkerStore(
            transport, self.target.state_dir
        )
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.reboot_waiter = reboot_waiter

    def run(
        self,
        actions: list[ResolvedAction],
        target: TargetContext | None = None,
    ) -> ProvisionReport:
        """Run the actions in order.

        Args:
            actions: Resolved actions.
            target: Target facts, defaults to the executor target.
        """
        target = target or self.target
        report = ProvisionReport()
        deadline = (
            time.monotonic() + self.timeout
            if self.timeout is not None
            else None
        )
        stopped = False
        for action in sorted(actions, key=lambda a: a.order_index):
            if stopped:
                report.actions.append(
                    _report(action, ActionStatus.SKIPPED)
                )
                continue
            action_report = self._run_action(action, target, deadline)
            report.actions.append(action_report)
            if action_report.status in (
                ActionStatus.FAILED,
                ActionStatus.PENDING_REBOOT,
            ):
                stopped = True
        logger.info(
            "Provisioning finished",
            succeeded=report.succeeded,
            pending_reboot=report.pending_reboot,
        )
        return report

    def _run_action(
        self,
        action: ResolvedAction,
        target: TargetContext,
        deadline: float | None,
    ) -> ActionReport:
        log = logger.bind(
            order=action.order_index,
            kind=action.kind.value,
            component=action.config.component,
        )
        start = time.monotonic()
        try:
            payload = action.materialize(target)
        except BaseError as e:
            return _report(
                action, ActionStatus.FAILED, message=str(e), start=start
            )
        log.info("Running action", version=payload.version)

        result = self._run_contract(payload, deadline)
        if (
            result.state is ExecutionState.PENDING_REBOOT
            and self.reboot_waiter is not None
        ):
            log.info("Waiting for the target to reboot")
            try:
                self.reboot_waiter()
            except ExecutionError as e:
                return _report(
                    action,
                    ActionStatus.FAILED,
                    message=str(e),
                    start=start,
                )
            result = self._run_contract(payload, deadline)

        return _report(
            action,
            STATUS_BY_STATE[result.state],
            version=result.version,
            message=str(result.error) if result.error else None,
            start=start,
        )

    def _run_contract(self, payload, deadline: float | None) -> ContractResult:
        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                error = ExecutionTimeoutError(
                    f"Provisioning timed out after {self.timeout}s",
                    component=payload.component,
                )
                return ContractResult(
                    state=ExecutionState.FAILED,
                    history=[ExecutionState.UNKNOWN, ExecutionState.FAILED],
                    error=error,
                )
        probe = CommandProbe(payload, self.transport, timeout=remaining)
        markers = self.markers
        if deadline is not None and isinstance(markers, TransportMarkerStore):
            markers = markers.until(deadline)
        contract = ExecutionContract(probe, markers, self.retry)
        return contract.run(payload.version)


def _report(
    action: ResolvedAction,
    status: ActionStatus,
    version: str | None = None,
    message: str | None = None,
    start: float | None = None,
) -> ActionReport:
    return ActionReport(
        order_index=action.order_index,
        kind=action.kind.value,
        component=action.config.component,
        status=status,
        version=version,
        message=message,
        duration=time.monotonic() - start if start is not None else 0.0,
    )
