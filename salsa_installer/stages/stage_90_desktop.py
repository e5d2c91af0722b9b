from __future__ import annotations

import shlex
from typing import List

from ..lib.chroot import as_user, chroot_cmd
from ..lib.manifests import PackageManifest
from ..lib.pkg import pacman_install, systemctl, yay_install
from ..plan import Action, step
from ..preconditions import CpuVendor, GpuVendor
from ..session import Session

# Intel's xf86 driver conflicts with the proprietary stack on hybrid laptops.
GRAPHICS_RULES = (
    ("installIntelGraphics", "intel", ("nvidia",)),
    ("installAmdGraphics", "amd", ()),
    ("installNvidiaGraphics", "nvidia", ()),
)

MICROCODE_RULES = (
    ("installIntelMicrocode", "intel"),
    ("installAmdMicrocode", "amd"),
)


def _pkg(action_id: str, root: str, packages, **kwargs) -> Action:
    return step(action_id, pacman_install(root, packages), idempotent=True, uses_package_db=True, **kwargs)


class DesktopStage:
    """Drivers, audio, bluetooth, the bspwm desktop and the user's dotfiles."""

    stage_id = "desktop"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        user = session.username
        home = f"/home/{user}"
        actions: List[Action] = []

        for action_id, vendor, excluding in GRAPHICS_RULES:
            pkgs = manifest.graphics.get(vendor)
            if pkgs:
                actions.append(
                    _pkg(action_id, root, pkgs, when=GpuVendor(vendor, excluding), parallel_group="drivers")
                )
        for action_id, vendor in MICROCODE_RULES:
            pkgs = manifest.microcode.get(vendor)
            if pkgs:
                actions.append(_pkg(action_id, root, pkgs, when=CpuVendor(vendor), parallel_group="drivers"))
        actions.append(step("regenerateInitramfs", chroot_cmd(root, "mkinitcpio", "-P"), idempotent=True))

        if manifest.audio:
            actions.append(_pkg("installAudio", root, manifest.audio, parallel_group="media"))
        if manifest.bluetooth:
            actions += [
                _pkg("installBluetooth", root, manifest.bluetooth, parallel_group="media"),
                step(
                    "enableBluetooth",
                    systemctl(root, "enable", "bluetooth.service"),
                    idempotent=True,
                    compensation=(systemctl(root, "disable", "bluetooth.service"),),
                ),
            ]
        if manifest.bluetooth_extras:
            actions.append(_pkg("installBluetoothExtras", root, manifest.bluetooth_extras))

        if manifest.desktop:
            actions.append(_pkg("installDesktopPackages", root, manifest.desktop))
        if manifest.aur:
            actions.append(
                step(
                    "installAurPackages",
                    yay_install(root, user, manifest.aur),
                    idempotent=True,
                    uses_package_db=True,
                )
            )
        actions.append(
            step(
                "enableSddm",
                systemctl(root, "enable", "sddm.service"),
                idempotent=True,
                compensation=(systemctl(root, "disable", "sddm.service"),),
            )
        )

        if manifest.dotfiles_repo:
            actions += [
                step(
                    "cloneDotfiles",
                    as_user(
                        root,
                        user,
                        f"rm -rf {home}/.dotfiles && git clone {shlex.quote(manifest.dotfiles_repo)} {home}/.dotfiles",
                    ),
                    idempotent=True,
                ),
                step(
                    "applyDotfiles",
                    as_user(root, user, f"mkdir -p {home}/.config && cp -r {home}/.dotfiles/. {home}/.config/"),
                    idempotent=True,
                ),
            ]
        actions += [
            step("chownHomeDesktop", chroot_cmd(root, "chown", "-R", f"{user}:{user}", home), idempotent=True),
            step(
                "cleanPackageCache",
                chroot_cmd(root, "pacman", "-Scc", "--noconfirm"),
                idempotent=True,
                uses_package_db=True,
            ),
        ]
        return actions
