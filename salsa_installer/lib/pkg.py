from __future__ import annotations

from typing import Sequence

from .chroot import as_user, chroot_cmd
from .command import Command, cmd, fmt_argv


def pacstrap(target_root: str, packages: Sequence[str]) -> Command:
    return cmd("pacstrap", "-K", target_root, *packages)


def pacman_install(target_root: str, packages: Sequence[str], *, needed: bool = True) -> Command:
    if not packages:
        raise ValueError("pacman_install requires at least one package")
    argv = ["pacman", "-S", "--noconfirm"]
    if needed:
        argv.append("--needed")
    return chroot_cmd(target_root, *argv, *packages)


def yay_install(target_root: str, username: str, packages: Sequence[str]) -> Command:
    if not packages:
        raise ValueError("yay_install requires at least one package")
    return as_user(target_root, username, "/usr/bin/yay -S --needed --noconfirm " + fmt_argv(packages))


def systemctl(target_root: str, verb: str, unit: str) -> Command:
    return chroot_cmd(target_root, "systemctl", verb, unit)
