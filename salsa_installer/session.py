from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

from .errors import UserAborted
from .lib.block import describe_devices, partition_path
from .lib.env import PATHS
from .prompter import Prompter
from .validate import VALIDATORS, FieldKind, Result, ValidationContext

logger = logging.getLogger(__name__)

FIELD_ORDER = (
    FieldKind.HOSTNAME,
    FieldKind.TIMEZONE,
    FieldKind.USERNAME,
    FieldKind.PASSWORD,
    FieldKind.DEVICE,
    FieldKind.SWAP_SIZE,
)


class FieldState(str, enum.Enum):
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class Field:
    kind: FieldKind
    raw: Optional[str] = field(default=None, repr=False)
    state: FieldState = FieldState.UNVALIDATED
    value: object = field(default=None, repr=False)
    reason: Optional[str] = None
    validator: Optional[Callable[[str, ValidationContext], Result]] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.validator is None:
            self.validator = VALIDATORS[self.kind]

    def submit(self, raw: str, context: ValidationContext) -> Result:
        self.raw = raw
        result = self.validator(raw, context)
        if result.ok:
            self.state = FieldState.VALID
            self.value = result.value
            self.reason = None
        else:
            self.state = FieldState.INVALID
            self.value = None
            self.reason = result.reason
        return result


@dataclass(frozen=True)
class Session:
    """Validated, immutable installer input plus derived values."""

    hostname: str
    timezone: str
    username: str
    password: str = field(repr=False)
    device: str
    swap_gib: int
    device_capacity_gib: int
    target_root: str = PATHS.target_root

    @property
    def device_path(self) -> str:
        return f"/dev/{self.device}"

    @property
    def efi_partition(self) -> str:
        return partition_path(self.device, 1)

    @property
    def root_partition(self) -> str:
        return partition_path(self.device, 2)

    @classmethod
    def from_fields(
        cls,
        fields: Iterable[Field],
        *,
        device_capacity_gib: int,
        target_root: str = PATHS.target_root,
    ) -> "Session":
        by_kind: Dict[FieldKind, Field] = {f.kind: f for f in fields}
        missing = [k.value for k in FIELD_ORDER if k not in by_kind or by_kind[k].state != FieldState.VALID]
        if missing:
            raise ValueError(f"Session requires valid fields, not valid: {', '.join(missing)}")
        return cls(
            hostname=str(by_kind[FieldKind.HOSTNAME].value),
            timezone=str(by_kind[FieldKind.TIMEZONE].value),
            username=str(by_kind[FieldKind.USERNAME].value),
            password=str(by_kind[FieldKind.PASSWORD].value),
            device=str(by_kind[FieldKind.DEVICE].value),
            swap_gib=int(by_kind[FieldKind.SWAP_SIZE].value),  # type: ignore[arg-type]
            device_capacity_gib=device_capacity_gib,
            target_root=target_root,
        )

    def summary(self) -> str:
        lines = [
            "Installation Summary:",
            "--------------------------------",
            f"Hostname:       {self.hostname}",
            f"Timezone:       {self.timezone}",
            f"New user:       {self.username}",
            "User password:  (hidden)",
            f"Device:         {self.device_path} ({self.device_capacity_gib}GiB, will be erased)",
            f"EFI partition:  {self.efi_partition}",
            f"Root partition: {self.root_partition}",
        ]
        if self.swap_gib > 0:
            lines.append(f"Swap file size: {self.swap_gib}GiB")
        else:
            lines.append("Swap:           no swap file")
        lines.append("--------------------------------")
        return "\n".join(lines)


def _ask_until_valid(prompter: Prompter, f: Field, context: ValidationContext) -> None:
    while True:
        raw = prompter.ask(f.kind)
        result = f.submit(raw, context)
        if result.ok:
            return
        logger.info("Rejected %s: %s", f.kind.value, result.reason)
        prompter.report(f.kind, result.reason)


def _ask_password(prompter: Prompter, f: Field, context: ValidationContext) -> None:
    while True:
        first = prompter.ask_secret(f.kind)
        result = f.submit(first, context)
        if not result.ok:
            prompter.report(f.kind, result.reason)
            continue
        if prompter.ask_secret(f.kind, confirm=True) == first:
            return
        f.state = FieldState.INVALID
        f.reason = "passwords do not match"
        prompter.report(f.kind, f.reason)


def gather_input(
    prompter: Prompter,
    context: ValidationContext,
    *,
    target_root: str = PATHS.target_root,
) -> Session:
    """Ask, validate and confirm every field; raise UserAborted otherwise.

    Nothing on the target system is touched here: the only environment
    access is read-only (timezone database, block device inventory).
    """

    fields = {k: Field(kind=k) for k in FIELD_ORDER}

    for kind in FIELD_ORDER:
        f = fields[kind]
        if kind == FieldKind.PASSWORD:
            _ask_password(prompter, f, context)
            continue
        if kind == FieldKind.DEVICE:
            prompter.show(describe_devices(context.devices))
        _ask_until_valid(prompter, f, context)
        if kind == FieldKind.DEVICE:
            context.device_capacity_gib = context.devices[str(f.value)].capacity_gib

    session = Session.from_fields(
        fields.values(),
        device_capacity_gib=int(context.device_capacity_gib or 0),
        target_root=target_root,
    )

    if not prompter.confirm(session.summary()):
        logger.info("Installation aborted at confirmation")
        raise UserAborted("Installation aborted by user")

    logger.info(
        "Session confirmed: hostname=%s timezone=%s user=%s device=%s swap=%sGiB",
        session.hostname,
        session.timezone,
        session.username,
        session.device,
        session.swap_gib,
    )
    return session
