from __future__ import annotations

import subprocess

import structlog

from gpustack.core.data_model import DataModel
from gpustack.core.exceptions import ExecutionTimeoutError

logger = structlog.get_logger(__name__)


class TransportResult(DataModel):
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Transport:
    """Runs bash scripts on the target host.

    Implementations must not raise for a non-zero exit code, it is
    returned in the result. Only a timeout or a broken connection
    raises.
    """

    def run(
        self,
        script: str,
        timeout: float | None = None,
    ) -> TransportResult:
        raise NotImplementedError(
            "Run method must be implemented by transport."
        )


class LocalTransport(Transport):
    """Run scripts on this machine with `bash -s`."""

    shell: str

    def __init__(self, shell: str = "bash"):
        self.shell = shell

    def run(
        self,
        script: str,
        timeout: float | None = None,
    ) -> TransportResult:
        try:
            process = subprocess.run(
                [self.shell, "-s"],
                input=script,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionTimeoutError(
                f"Script timed out after {timeout}s"
            ) from e
        logger.debug("Script finished", exit_code=process.returncode)
        return TransportResult(
            exit_code=process.returncode,
            output=process.stdout or "",
        )
