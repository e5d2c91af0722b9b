from __future__ import annotations

import shlex
from typing import List

from ..lib.chroot import as_user, chroot_cmd
from ..lib.manifests import PackageManifest
from ..lib.pkg import pacman_install, systemctl
from ..plan import Action, step
from ..session import Session


def _ohmyzsh_script(installer_url: str) -> str:
    # Skip when already installed so the action can be re-run on resume.
    return (
        '[ -d "$HOME/.oh-my-zsh" ] || '
        f'RUNZSH=no CHSH=no sh -c "$(curl -fsSL {shlex.quote(installer_url)})"'
    )


class ShellStage:
    """Oh My Zsh, the yay AUR helper and TLP power management."""

    stage_id = "shell"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        user = session.username
        home = f"/home/{user}"
        actions: List[Action] = []

        if manifest.ohmyzsh_installer:
            script = _ohmyzsh_script(manifest.ohmyzsh_installer)
            actions += [
                step(
                    "installOhMyZshRoot",
                    chroot_cmd(root, "sh", "-c", script),
                    idempotent=True,
                    parallel_group="ohmyzsh",
                ),
                step(
                    "installOhMyZshUser",
                    as_user(root, user, script),
                    idempotent=True,
                    parallel_group="ohmyzsh",
                ),
                step(
                    "createZshThemeDirs",
                    chroot_cmd(root, "mkdir", "-p", "/root/.oh-my-zsh/custom/themes", f"{home}/.oh-my-zsh/custom/themes"),
                    idempotent=True,
                ),
            ]
        actions.append(step("chownHome", chroot_cmd(root, "chown", "-R", f"{user}:{user}", home), idempotent=True))

        if manifest.build_tools and manifest.yay_repo:
            build_dir = f"{home}/yay_build"
            actions += [
                step(
                    "installBuildTools",
                    pacman_install(root, manifest.build_tools),
                    idempotent=True,
                    uses_package_db=True,
                ),
                step(
                    "buildYay",
                    as_user(
                        root,
                        user,
                        "rm -rf ~/yay_build && mkdir -p ~/yay_build"
                        f" && git clone {shlex.quote(manifest.yay_repo)} ~/yay_build/yay"
                        " && cd ~/yay_build/yay && makepkg --noconfirm",
                    ),
                    idempotent=True,
                ),
                step(
                    "installYay",
                    chroot_cmd(
                        root,
                        "bash",
                        "-c",
                        f"pacman -U --noconfirm $(find {build_dir}/yay -name 'yay-*.pkg.tar.zst')",
                    ),
                    idempotent=True,
                    uses_package_db=True,
                ),
                step("cleanYayBuild", chroot_cmd(root, "rm", "-rf", build_dir), idempotent=True),
            ]

        if manifest.power:
            actions += [
                step("installTlp", pacman_install(root, manifest.power), idempotent=True, uses_package_db=True),
                step(
                    "enableTlp",
                    systemctl(root, "enable", "tlp.service"),
                    systemctl(root, "enable", "tlp-sleep.service"),
                    idempotent=True,
                ),
            ]
        return actions
