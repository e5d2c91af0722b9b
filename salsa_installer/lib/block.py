from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..errors import EnvironmentQueryFailed
from .command import SystemRunner, cmd

logger = logging.getLogger(__name__)

GIB = 1024 ** 3

PROTECTED_MOUNTPOINTS = frozenset(
    {"/", "/boot", "/boot/efi", "/efi", "/run/archiso/bootmnt", "[SWAP]"}
)

LSBLK_COLUMNS = "NAME,SIZE,TYPE,MOUNTPOINTS,MODEL"


@dataclass(frozen=True)
class BlockDevice:
    name: str
    size_bytes: int
    type: str
    mountpoints: Tuple[str, ...] = ()
    model: Optional[str] = None
    children: Tuple["BlockDevice", ...] = ()

    @property
    def capacity_gib(self) -> int:
        return self.size_bytes // GIB

    def all_mountpoints(self) -> List[str]:
        points = list(self.mountpoints)
        for child in self.children:
            points.extend(child.all_mountpoints())
        return points


def partition_path(disk: str, n: int) -> str:
    """/dev path of partition n; nvme/mmcblk names take a 'p' separator."""

    name = disk[len("/dev/"):] if disk.startswith("/dev/") else disk
    if name.endswith(tuple("0123456789")):
        return f"/dev/{name}p{n}"
    return f"/dev/{name}{n}"


def _mountpoints(node: Dict[str, Any]) -> Tuple[str, ...]:
    # util-linux >= 2.37 reports a list, older releases a single value.
    raw = node.get("mountpoints")
    if raw is None:
        raw = [node.get("mountpoint")]
    return tuple(str(m) for m in raw if m)


def _parse_node(node: Dict[str, Any]) -> BlockDevice:
    try:
        size = int(node.get("size") or 0)
    except (TypeError, ValueError) as e:
        raise EnvironmentQueryFailed(f"lsblk reported a non-numeric size for {node.get('name')}") from e
    return BlockDevice(
        name=str(node.get("name")),
        size_bytes=size,
        type=str(node.get("type") or ""),
        mountpoints=_mountpoints(node),
        model=(str(node["model"]).strip() or None) if node.get("model") else None,
        children=tuple(_parse_node(c) for c in node.get("children") or []),
    )


def parse_lsblk_json(text: str) -> Dict[str, BlockDevice]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise EnvironmentQueryFailed("lsblk produced unreadable output") from e
    if not isinstance(data, dict) or not isinstance(data.get("blockdevices"), list):
        raise EnvironmentQueryFailed("lsblk output has no blockdevices list")
    devices = [_parse_node(n) for n in data["blockdevices"]]
    return {d.name: d for d in devices}


def list_block_devices(runner: SystemRunner) -> Dict[str, BlockDevice]:
    """Enumerate top-level block devices (sizes in bytes)."""

    try:
        r = runner.exec(cmd("lsblk", "-J", "-b", "-o", LSBLK_COLUMNS))
    except OSError as e:
        raise EnvironmentQueryFailed(f"Unable to run lsblk: {e}") from e
    if r.returncode != 0:
        raise EnvironmentQueryFailed(f"lsblk failed ({r.returncode}): {r.stderr.strip()}")
    return parse_lsblk_json(r.stdout)


def describe_devices(devices: Dict[str, BlockDevice]) -> str:
    lines = ["Available devices:"]
    for d in devices.values():
        if d.type != "disk":
            continue
        mounts = ",".join(d.all_mountpoints()) or "-"
        lines.append(f"  {d.name:<12} {d.capacity_gib:>6}GiB  {d.model or '':<24} {mounts}")
    return "\n".join(lines)
