from __future__ import annotations

import logging
from typing import FrozenSet

logger = logging.getLogger(__name__)

_GPU_VENDOR_MARKERS = {
    "intel": ("intel",),
    "amd": ("amd", "advanced micro devices", "ati technologies", "radeon"),
    "nvidia": ("nvidia",),
}

_CPU_VENDOR_IDS = {
    "genuineintel": "intel",
    "authenticamd": "amd",
}


def _display_lines(lspci_output: str) -> list[str]:
    out: list[str] = []
    for ln in lspci_output.splitlines():
        low = ln.lower()
        if "vga" in low or "3d" in low:
            out.append(low)
    return out


def gpu_vendors(lspci_output: str) -> FrozenSet[str]:
    """Vendors of VGA/3D controllers found in `lspci` output."""

    found = set()
    for ln in _display_lines(lspci_output):
        for vendor, markers in _GPU_VENDOR_MARKERS.items():
            if any(m in ln for m in markers):
                found.add(vendor)
    return frozenset(found)


def cpu_vendors(cpuinfo: str) -> FrozenSet[str]:
    """CPU vendors named by vendor_id lines of /proc/cpuinfo."""

    found = set()
    for ln in cpuinfo.splitlines():
        key, _, value = ln.partition(":")
        if key.strip().lower() != "vendor_id":
            continue
        vendor = _CPU_VENDOR_IDS.get(value.strip().lower())
        if vendor:
            found.add(vendor)
    return frozenset(found)
