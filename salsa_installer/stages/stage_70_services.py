from __future__ import annotations

from typing import List

from ..lib.chroot import chroot_cmd
from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..lib.pkg import pacman_install, systemctl
from ..plan import Action, step
from ..session import Session


class ServicesStage:
    """Networking, time sync and the firewall.

    ufw needs the live kernel's modules while it is configured, so they are
    bind-mounted into the target for the duration of the firewall actions.
    """

    stage_id = "services"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        modules = f"{root}/lib/modules"
        actions: List[Action] = []
        if manifest.network:
            actions.append(
                step("installNetworkManager", pacman_install(root, manifest.network), idempotent=True, uses_package_db=True)
            )
        actions += [
            step(
                "enableNetworkManager",
                systemctl(root, "enable", "NetworkManager.service"),
                idempotent=True,
                compensation=(systemctl(root, "disable", "NetworkManager.service"),),
            ),
            step(
                "enableTimesyncd",
                systemctl(root, "enable", "systemd-timesyncd.service"),
                idempotent=True,
                compensation=(systemctl(root, "disable", "systemd-timesyncd.service"),),
            ),
        ]
        if not manifest.firewall:
            return actions
        actions += [
            step(
                "bindKernelModules",
                cmd("mkdir", "-p", modules),
                cmd("mount", "--bind", "/lib/modules", modules),
                compensation=(cmd("umount", modules),),
            ),
            step("installUfw", pacman_install(root, manifest.firewall), idempotent=True, uses_package_db=True),
            step(
                "configureUfw",
                chroot_cmd(root, "ufw", "default", "deny", "incoming"),
                chroot_cmd(root, "ufw", "default", "allow", "outgoing"),
                idempotent=True,
            ),
            step(
                "enableUfw",
                chroot_cmd(root, "ufw", "enable"),
                systemctl(root, "enable", "ufw.service"),
                idempotent=True,
                compensation=(systemctl(root, "disable", "ufw.service"),),
            ),
            step("unbindKernelModules", cmd("umount", modules)),
        ]
        return actions
