from __future__ import annotations

from typing import List

from ..lib.chroot import chroot_cmd
from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..lib.pkg import pacman_install
from ..plan import Action, step
from ..session import Session

SWAPFILE = "/swapfile"
WHEEL_SUDO_SED = r"s/^# (%wheel ALL=\(ALL(:ALL)?\) ALL)$/\1/"


class UsersStage:
    stage_id = "users"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        user = session.username
        actions = [
            step(
                "createUser",
                chroot_cmd(root, "useradd", "-m", "-G", "wheel", "-s", "/bin/zsh", user),
                compensation=(chroot_cmd(root, "userdel", "-r", user),),
            ),
            step(
                "setUserPassword",
                cmd("chpasswd", "--root", root, input_text=f"{user}:{session.password}\n", secret=True),
                idempotent=True,
            ),
        ]
        if manifest.sudo:
            actions.append(
                step("installSudo", pacman_install(root, manifest.sudo), idempotent=True, uses_package_db=True)
            )
        actions.append(
            step(
                "enableWheelSudo",
                chroot_cmd(root, "sed", "-E", "-i", WHEEL_SUDO_SED, "/etc/sudoers"),
                idempotent=True,
            )
        )
        if session.swap_gib > 0:
            actions += [
                step(
                    "createSwapfile",
                    chroot_cmd(root, "fallocate", "-l", f"{session.swap_gib}G", SWAPFILE),
                    chroot_cmd(root, "chmod", "600", SWAPFILE),
                    chroot_cmd(root, "mkswap", SWAPFILE),
                    idempotent=True,
                    compensation=(chroot_cmd(root, "rm", "-f", SWAPFILE),),
                ),
                step(
                    "registerSwapfile",
                    cmd("sh", "-c", f"echo '{SWAPFILE} none swap defaults 0 0' >> {root}/etc/fstab"),
                    compensation=(chroot_cmd(root, "sed", "-i", f"\\|^{SWAPFILE} |d", "/etc/fstab"),),
                ),
            ]
        return actions
