from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = 124
MISSING_RETURNCODE = 127


@dataclass(frozen=True)
class Command:
    """A single argv invocation issued through the system runner.

    input_text is fed to stdin and never logged or printed. secret marks
    stdin that carries a password; it is left out of the plan digest.
    """

    argv: Tuple[str, ...]
    input_text: Optional[str] = field(default=None, repr=False, compare=True)
    timeout_s: Optional[float] = None
    secret: bool = False

    def render(self) -> str:
        txt = fmt_argv(self.argv)
        if self.input_text is not None:
            txt += " <stdin>"
        return txt


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SystemRunner(Protocol):
    """The only seam through which actions touch the operating environment."""

    def exec(self, command: Command) -> CmdResult:
        ...


def cmd(
    *argv: str,
    input_text: Optional[str] = None,
    timeout_s: Optional[float] = None,
    secret: bool = False,
) -> Command:
    return Command(argv=tuple(argv), input_text=input_text, timeout_s=timeout_s, secret=secret)


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    input_text: str | None = None,
    timeout_s: float | None = None,
) -> CmdResult:
    """Run a command with consistent logging; never raises on failure.

    - Always logs the command (never its stdin).
    - Captures stdout/stderr so failures can be surfaced verbatim.
    - A timeout yields returncode 124, a missing program 127.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired as e:
        logger.error("Command timed out after %ss: %s", timeout_s, fmt_argv(argv_list))
        stdout = e.stdout.decode("utf-8", "replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        stderr = e.stderr.decode("utf-8", "replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        return CmdResult(
            argv=argv_list,
            returncode=TIMEOUT_RETURNCODE,
            stdout=stdout,
            stderr=stderr + f"\ntimed out after {timeout_s}s",
        )
    except FileNotFoundError as e:
        return CmdResult(argv=argv_list, returncode=MISSING_RETURNCODE, stdout="", stderr=str(e))

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


class SubprocessRunner:
    """SystemRunner backed by subprocess; never raises on non-zero exit."""

    def __init__(self, *, default_timeout_s: float | None = None) -> None:
        self.default_timeout_s = default_timeout_s

    def exec(self, command: Command) -> CmdResult:
        timeout = command.timeout_s if command.timeout_s is not None else self.default_timeout_s
        return run_cmd(
            command.argv,
            input_text=command.input_text,
            timeout_s=timeout,
        )
