"""Predicates evaluated against the live system just before an action runs.

They serve two roles on an Action:

- ``precondition``: a gate. False means the system is not in the state the
  action needs, the stage is compensated and the run aborted.
- ``when``: hardware detection. False means the action does not apply to
  this machine and is skipped.

Predicates are frozen dataclasses so plans built twice compare equal. All
probing goes through the SystemRunner.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Tuple

from .errors import EnvironmentQueryFailed
from .lib.block import list_block_devices
from .lib.command import SystemRunner, cmd
from .lib.hwdetect import cpu_vendors, gpu_vendors

if TYPE_CHECKING:
    from .session import Session


@dataclass(frozen=True)
class ActionContext:
    runner: SystemRunner
    session: "Session"


class Predicate(Protocol):
    def check(self, ctx: ActionContext) -> bool:
        ...

    def describe(self) -> str:
        ...


def _probe(ctx: ActionContext, *argv: str) -> str:
    r = ctx.runner.exec(cmd(*argv))
    if r.returncode != 0:
        raise EnvironmentQueryFailed(f"{argv[0]} failed ({r.returncode}): {r.stderr.strip()}")
    return r.stdout


@dataclass(frozen=True)
class DeviceIdle:
    """Neither the disk nor any of its partitions is mounted."""

    device: str

    def check(self, ctx: ActionContext) -> bool:
        dev = list_block_devices(ctx.runner).get(self.device)
        return dev is not None and not dev.all_mountpoints()

    def describe(self) -> str:
        return f"/dev/{self.device} has no mounted filesystems"


@dataclass(frozen=True)
class Mounted:
    path: str

    def check(self, ctx: ActionContext) -> bool:
        r = ctx.runner.exec(cmd("findmnt", "-n", self.path))
        if r.returncode in (0, 1):
            return r.returncode == 0
        raise EnvironmentQueryFailed(f"findmnt failed ({r.returncode}): {r.stderr.strip()}")

    def describe(self) -> str:
        return f"{self.path} is mounted"


@dataclass(frozen=True)
class EfiFirmware:
    def check(self, ctx: ActionContext) -> bool:
        return ctx.runner.exec(cmd("test", "-d", "/sys/firmware/efi")).returncode == 0

    def describe(self) -> str:
        return "live environment booted in UEFI mode"


@dataclass(frozen=True)
class GpuVendor:
    """A graphics controller from vendor is present and none from excluding."""

    vendor: str
    excluding: Tuple[str, ...] = ()

    def check(self, ctx: ActionContext) -> bool:
        found = gpu_vendors(_probe(ctx, "lspci"))
        return self.vendor in found and not (found & set(self.excluding))

    def describe(self) -> str:
        txt = f"{self.vendor} graphics detected"
        if self.excluding:
            txt += f" without {'/'.join(self.excluding)}"
        return txt


@dataclass(frozen=True)
class CpuVendor:
    vendor: str

    def check(self, ctx: ActionContext) -> bool:
        return self.vendor in cpu_vendors(_probe(ctx, "cat", "/proc/cpuinfo"))

    def describe(self) -> str:
        return f"{self.vendor} CPU detected"


@dataclass(frozen=True)
class AllOf:
    predicates: Tuple["Predicate", ...]

    def check(self, ctx: ActionContext) -> bool:
        return all(p.check(ctx) for p in self.predicates)

    def describe(self) -> str:
        return " and ".join(p.describe() for p in self.predicates)
