from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    target_root: str = "/mnt"
    checkpoint_default: str = "/var/lib/salsa-installer/checkpoint.json"
    log_default: str = "/var/log/salsa-installer.log"
    zoneinfo_root: str = "/usr/share/zoneinfo"


PATHS = Paths()
