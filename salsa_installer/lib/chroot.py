from __future__ import annotations

from typing import Optional

from .command import Command, cmd


def chroot_cmd(target_root: str, *argv: str, input_text: Optional[str] = None) -> Command:
    """Command run inside target root."""

    return cmd("arch-chroot", target_root, *argv, input_text=input_text)


def as_user(target_root: str, username: str, script: str) -> Command:
    """Login shell command for username inside target root."""

    return chroot_cmd(target_root, "su", "-", username, "-c", script)


def write_file(path: str, contents: str, *, append: bool = False) -> Command:
    argv = ["tee"]
    if append:
        argv.append("-a")
    argv.append(path)
    return cmd(*argv, input_text=contents)
