from __future__ import annotations

from typing import Optional, Sequence

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_EXECUTION = 2
EXIT_ENVIRONMENT = 3


class InstallerError(Exception):
    """Base class for every error the installer reports to the user."""

    exit_code = EXIT_EXECUTION


class ValidationFailed(InstallerError):
    exit_code = EXIT_INPUT

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class UserAborted(InstallerError):
    exit_code = EXIT_INPUT


class EnvironmentQueryFailed(InstallerError):
    """Devices or timezones could not be enumerated. Fatal, never retried."""

    exit_code = EXIT_ENVIRONMENT


class PreconditionNotMet(InstallerError):
    exit_code = EXIT_ENVIRONMENT


class CheckpointMismatch(InstallerError):
    exit_code = EXIT_ENVIRONMENT


class ActionExecutionFailed(InstallerError):
    exit_code = EXIT_EXECUTION

    def __init__(
        self,
        action_key: str,
        *,
        argv: Sequence[str] = (),
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(f"{action_key} failed (exit {returncode}): {' '.join(argv)}")
        self.action_key = action_key
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
