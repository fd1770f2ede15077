from __future__ import annotations

import structlog

from gpustack.core.exceptions import error_from_exit_code
from gpustack.scripts import Payload

from ._models import InstallOutcome
from .transports import Transport

logger = structlog.get_logger(__name__)


class CommandProbe:
    """Run the scripts of a payload over a transport.

    Args:
        payload: Rendered payload of the action.
        transport: Transport to the target.
        timeout: Seconds each script may run, None for no limit.
    """

    payload: Payload
    transport: Transport
    timeout: float | None

    def __init__(
        self,
        payload: Payload,
        transport: Transport,
        timeout: float | None = None,
    ):
        self.payload = payload
        self.transport = transport
        self.timeout = timeout

    @property
    def component(self) -> str:
        return self.payload.component

    def installed_version(self) -> str | None:
        result = self._run(self.payload.version_script)
        if not result.ok:
            raise error_from_exit_code(
                result.exit_code,
                f"Version check of {self.component} failed",
                component=self.component,
                output=result.output,
            )
        lines = [line.strip() for line in result.output.splitlines()]
        lines = [line for line in lines if line]
        return lines[-1] if lines else None

    def verify(self) -> bool:
        return self._run(self.payload.verify_script).ok

    def install(self) -> InstallOutcome:
        result = self._run(self.payload.install_script)
        if not result.ok:
            raise error_from_exit_code(
                result.exit_code,
                f"Install of {self.component} failed with exit code "
                f"{result.exit_code}",
                component=self.component,
                output=result.output,
            )
        if self.payload.requires_reboot:
            return InstallOutcome.REBOOT_REQUIRED
        return InstallOutcome.DONE

    def reboot(self) -> None:
        result = self._run(self.payload.reboot_script)
        if not result.ok:
            # the connection usually drops while the host goes down
            logger.debug(
                "Reboot script exited",
                component=self.component,
                exit_code=result.exit_code,
            )

    def _run(self, body: str):
        return self.transport.run(
            self.payload.wrap(body),
            timeout=self.timeout,
        )
