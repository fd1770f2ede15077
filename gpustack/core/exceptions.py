__all__ = [
    "BaseError",
    "DependencyError",
    "ExecutionError",
    "ExecutionTimeoutError",
    "LoadError",
    "NotSupportedError",
    "ResolutionError",
    "TransientError",
    "VerificationError",
    "error_from_exit_code",
]


class BaseError(Exception):
    exit_code: int = 1


class ResolutionError(BaseError):
    """Environment spec cannot be turned into a provisioning plan."""

    exit_code = 2


class LoadError(BaseError):
    exit_code = 2


class NotSupportedError(BaseError):
    exit_code = 2


class ExecutionError(BaseError):
    """An action failed on the target host."""

    exit_code = 1

    def __init__(
        self,
        message: str = "",
        component: str | None = None,
        exit_code: int | None = None,
        output: str | None = None,
    ):
        super().__init__(message)
        self.component = component
        self.output = output
        if exit_code is not None:
            self.exit_code = exit_code


class TransientError(ExecutionError):
    """Network or repository failure that may succeed on retry."""

    exit_code = 3


class DependencyError(ExecutionError):
    exit_code = 4


class VerificationError(ExecutionError):
    """Component installed but its functional probe failed."""

    exit_code = 5


class ExecutionTimeoutError(ExecutionError):
    exit_code = 124


_EXIT_CODES: dict[int, type[ExecutionError]] = {
    TransientError.exit_code: TransientError,
    DependencyError.exit_code: DependencyError,
    VerificationError.exit_code: VerificationError,
    ExecutionTimeoutError.exit_code: ExecutionTimeoutError,
}


def error_from_exit_code(
    exit_code: int,
    message: str,
    component: str | None = None,
    output: str | None = None,
) -> ExecutionError:
    """Map a payload exit code to the matching execution error.

    Codes 10-13 (driver, runtime, toolkit, kubernetes) and any other
    unknown code become a plain ExecutionError carrying the code.
    """
    error_type = _EXIT_CODES.get(exit_code, ExecutionError)
    return error_type(
        message,
        component=component,
        exit_code=exit_code,
        output=output,
    )
