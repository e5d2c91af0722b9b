from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .lib.env import PATHS

ANSWER_KEYS = ("hostname", "timezone", "username", "password", "device", "swap_size")


@dataclass(frozen=True)
class InstallerConfig:
    """Installer settings from an optional YAML file.

    Layout::

        answers: {hostname: ..., timezone: ..., username: ..., password: ...,
                  device: ..., swap_size: ...}
        execution: {retries: 1, timeout_s: null, max_workers: null}
        paths: {target_root: /mnt, checkpoint: ..., log: ..., zoneinfo: ...}
        packages: path/to/packages.yaml
    """

    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        value = self.raw.get(name) or {}
        if not isinstance(value, dict):
            raise ValueError(f"config section {name!r} must be a mapping")
        return value

    @property
    def answers(self) -> Dict[str, str]:
        section = self._section("answers")
        unknown = sorted(set(section) - set(ANSWER_KEYS))
        if unknown:
            raise ValueError(f"Unknown answers in config: {', '.join(unknown)}")
        return {k: str(v) for k, v in section.items() if v is not None}

    @property
    def retries(self) -> int:
        return int(self._section("execution").get("retries", 1))

    @property
    def timeout_s(self) -> Optional[float]:
        value = self._section("execution").get("timeout_s")
        return float(value) if value is not None else None

    @property
    def max_workers(self) -> Optional[int]:
        value = self._section("execution").get("max_workers")
        return int(value) if value is not None else None

    @property
    def target_root(self) -> str:
        return str(self._section("paths").get("target_root") or PATHS.target_root)

    @property
    def checkpoint_path(self) -> str:
        return str(self._section("paths").get("checkpoint") or PATHS.checkpoint_default)

    @property
    def log_path(self) -> str:
        return str(self._section("paths").get("log") or PATHS.log_default)

    @property
    def zoneinfo_root(self) -> str:
        return str(self._section("paths").get("zoneinfo") or PATHS.zoneinfo_root)

    @property
    def packages_path(self) -> Optional[str]:
        value = self.raw.get("packages")
        return str(value) if value else None


def load_config(path: Optional[str]) -> InstallerConfig:
    if not path:
        return InstallerConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("installer config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("installer config must contain a mapping/object")

    return InstallerConfig(raw=raw)
