from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

_VENDORS = ("intel", "amd", "nvidia")


def _package_root() -> Path:
    # salsa_installer/lib/manifests.py -> salsa_installer
    return Path(__file__).resolve().parents[1]


DEFAULT_MANIFEST = _package_root() / "manifests" / "packages.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a mapping/dict: {path}")
    return data


def _pkgs(raw: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = raw.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"Manifest key {key!r} must be a list of package names")
    return tuple(str(p).strip() for p in value if str(p).strip())


def _by_vendor(raw: Dict[str, Any], key: str) -> Dict[str, Tuple[str, ...]]:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Manifest key {key!r} must map vendor -> packages")
    return {v: _pkgs(section, v) for v in _VENDORS if section.get(v)}


@dataclass(frozen=True)
class PackageManifest:
    base: Tuple[str, ...]
    sudo: Tuple[str, ...]
    network: Tuple[str, ...]
    firewall: Tuple[str, ...]
    build_tools: Tuple[str, ...]
    power: Tuple[str, ...]
    graphics: Dict[str, Tuple[str, ...]]
    microcode: Dict[str, Tuple[str, ...]]
    audio: Tuple[str, ...]
    bluetooth: Tuple[str, ...]
    bluetooth_extras: Tuple[str, ...]
    desktop: Tuple[str, ...]
    aur: Tuple[str, ...]
    dotfiles_repo: Optional[str]
    ohmyzsh_installer: str
    yay_repo: str

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "PackageManifest":
        base = _pkgs(raw, "base")
        if not base:
            raise ValueError("Manifest must list base packages for pacstrap")
        return cls(
            base=base,
            sudo=_pkgs(raw, "sudo"),
            network=_pkgs(raw, "network"),
            firewall=_pkgs(raw, "firewall"),
            build_tools=_pkgs(raw, "build_tools"),
            power=_pkgs(raw, "power"),
            graphics=_by_vendor(raw, "graphics"),
            microcode=_by_vendor(raw, "microcode"),
            audio=_pkgs(raw, "audio"),
            bluetooth=_pkgs(raw, "bluetooth"),
            bluetooth_extras=_pkgs(raw, "bluetooth_extras"),
            desktop=_pkgs(raw, "desktop"),
            aur=_pkgs(raw, "aur"),
            dotfiles_repo=raw.get("dotfiles_repo") or None,
            ohmyzsh_installer=str(raw.get("ohmyzsh_installer") or ""),
            yay_repo=str(raw.get("yay_repo") or ""),
        )


def load_package_manifest(path: Optional[str] = None) -> PackageManifest:
    """Load the package manifest (bundled default unless path is given)."""

    p = Path(path) if path else DEFAULT_MANIFEST
    return PackageManifest.from_raw(load_yaml(p))
