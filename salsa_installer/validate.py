"""Validation of user-supplied installer values.

Every validator returns a tagged result: ``Valid(value)`` carrying the
normalized value, or ``Invalid(reason)``. Expected bad input never raises;
only a failure to query the environment does (``EnvironmentQueryFailed``).
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .errors import EnvironmentQueryFailed
from .lib.block import PROTECTED_MOUNTPOINTS, BlockDevice
from .lib.env import PATHS


class FieldKind(str, enum.Enum):
    HOSTNAME = "hostname"
    TIMEZONE = "timezone"
    USERNAME = "username"
    PASSWORD = "password"
    DEVICE = "device"
    SWAP_SIZE = "swap_size"


@dataclass(frozen=True)
class Valid:
    value: object

    ok = True


@dataclass(frozen=True)
class Invalid:
    reason: str

    ok = False


Result = Union[Valid, Invalid]

_LABEL_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")
_USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]*$")
_TZ_PART_RE = re.compile(r"^[A-Za-z0-9_+-]+$")
_SWAP_RE = re.compile(r"^[0-9]+$")

MAX_HOSTNAME = 253
MAX_LABEL = 63
MAX_USERNAME = 32

RESERVED_USERNAMES = frozenset(
    {
        "root",
        "bin",
        "daemon",
        "mail",
        "ftp",
        "http",
        "nobody",
        "dbus",
        "polkitd",
        "rtkit",
        "git",
        "uuidd",
        "avahi",
        "colord",
        "sddm",
        "tss",
        "alpm",
    }
)


@dataclass
class ValidationContext:
    """Environment the validators consult.

    devices is loaded lazily through device_loader so pure checks
    (hostname, username) never trigger an lsblk call.
    """

    zoneinfo_root: str = PATHS.zoneinfo_root
    device_loader: Optional[Callable[[], Dict[str, BlockDevice]]] = None
    device_capacity_gib: Optional[int] = None
    _devices: Optional[Dict[str, BlockDevice]] = field(default=None, repr=False)

    @property
    def devices(self) -> Dict[str, BlockDevice]:
        if self._devices is None:
            if self.device_loader is None:
                raise EnvironmentQueryFailed("No block device inventory available")
            self._devices = self.device_loader()
        return self._devices


def validate_hostname(raw: str, context: ValidationContext) -> Result:
    if not raw:
        return Invalid("hostname must not be empty")
    if len(raw) > MAX_HOSTNAME:
        return Invalid(f"hostname is longer than {MAX_HOSTNAME} characters")
    for label in raw.split("."):
        if not label:
            return Invalid("hostname contains an empty label")
        if len(label) > MAX_LABEL:
            return Invalid(f"label {label[:16]!r}... is longer than {MAX_LABEL} characters")
        if not _LABEL_RE.fullmatch(label):
            return Invalid(
                f"label {label!r} must be alphanumeric with interior hyphens only"
            )
    return Valid(raw)


def validate_username(raw: str, context: ValidationContext) -> Result:
    if not _USERNAME_RE.fullmatch(raw):
        return Invalid("username must match ^[a-z_][a-z0-9_-]*$")
    if len(raw) > MAX_USERNAME:
        return Invalid(f"username is longer than {MAX_USERNAME} characters")
    if raw in RESERVED_USERNAMES or raw.startswith("systemd-"):
        return Invalid(f"{raw!r} is a reserved system account name")
    return Valid(raw)


def validate_password(raw: str, context: ValidationContext) -> Result:
    if not raw:
        return Invalid("password must not be empty")
    if "\n" in raw or "\r" in raw:
        return Invalid("password must not contain line breaks")
    return Valid(raw)


def validate_timezone(raw: str, context: ValidationContext) -> Result:
    root = Path(context.zoneinfo_root)
    if not root.is_dir():
        raise EnvironmentQueryFailed(f"Timezone database not found at {root}")
    parts = raw.split("/")
    if not raw or not all(_TZ_PART_RE.fullmatch(p) for p in parts):
        return Invalid(f"{raw!r} is not a timezone name (e.g. America/New_York)")
    if not (root / raw).is_file():
        return Invalid(f"unknown timezone {raw!r}")
    return Valid(raw)


def validate_device(raw: str, context: ValidationContext) -> Result:
    name = raw[len("/dev/"):] if raw.startswith("/dev/") else raw
    if not name or "/" in name:
        return Invalid(f"{raw!r} is not a block device name (e.g. sda)")
    dev = context.devices.get(name)
    if dev is None:
        return Invalid(f"no block device named {name!r}")
    if dev.type != "disk":
        return Invalid(f"{name!r} is a {dev.type or 'non-disk'} device, not a whole disk")
    busy = sorted(set(dev.all_mountpoints()) & PROTECTED_MOUNTPOINTS)
    if busy:
        return Invalid(f"{name!r} is in use (mounted at {', '.join(busy)})")
    return Valid(name)


def validate_swap_size(raw: str, context: ValidationContext) -> Result:
    text = raw.strip()
    if not _SWAP_RE.fullmatch(text):
        return Invalid("swap size must be a non-negative integer (GiB)")
    size = int(text)
    capacity = context.device_capacity_gib
    if capacity is None:
        raise EnvironmentQueryFailed("Target device capacity unknown; validate the device first")
    if size > capacity:
        return Invalid(
            f"swap size {size}GiB exceeds the device capacity of {capacity}GiB"
        )
    return Valid(size)


VALIDATORS: Dict[FieldKind, Callable[[str, ValidationContext], Result]] = {
    FieldKind.HOSTNAME: validate_hostname,
    FieldKind.TIMEZONE: validate_timezone,
    FieldKind.USERNAME: validate_username,
    FieldKind.PASSWORD: validate_password,
    FieldKind.DEVICE: validate_device,
    FieldKind.SWAP_SIZE: validate_swap_size,
}


def validate(kind: FieldKind, raw: str, context: ValidationContext) -> Result:
    return VALIDATORS[kind](raw, context)
