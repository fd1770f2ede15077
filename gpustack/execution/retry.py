from __future__ import annotations

from typing import Any, Callable, Literal, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
    wait_incrementing,
)

from gpustack.core.data_model import FrozenDataModel
from gpustack.core.exceptions import TransientError
from gpustack.core.manifest import RetrySettings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(FrozenDataModel):
    """Bounded retry of transient install failures.

    Only TransientError is retried. Once the attempts are used up the
    last error is raised.

    Attributes:
        attempts: Total attempts, including the first one.
        delay: Seconds between attempts.
        backoff: "fixed" or "linear".
    """

    attempts: int = 3
    delay: float = 5.0
    backoff: Literal["fixed", "linear"] = "fixed"

    @staticmethod
    def from_settings(settings: RetrySettings) -> RetryPolicy:
        return RetryPolicy(
            attempts=settings.attempts,
            delay=settings.delay,
            backoff=settings.backoff,
        )

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(max(self.attempts, 1)),
            wait=self._wait(),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(func, *args, **kwargs)

    def _wait(self):
        if self.backoff == "linear":
            return wait_incrementing(start=self.delay, increment=self.delay)
        return wait_fixed(self.delay)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient failure, retrying",
        attempt=retry_state.attempt_number,
        component=getattr(error, "component", None),
        error=str(error),
    )
