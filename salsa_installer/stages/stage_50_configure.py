from __future__ import annotations

from typing import List

from ..lib.chroot import chroot_cmd, write_file
from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..plan import Action, step
from ..preconditions import EfiFirmware
from ..session import Session

LOCALE = "en_US.UTF-8"
KEYMAP = "us"


def render_hosts(hostname: str) -> str:
    return "\n".join(
        [
            "127.0.0.1 localhost",
            "::1       localhost",
            f"127.0.1.1 {hostname}.localdomain {hostname}",
            "",
        ]
    )


class ConfigureStage:
    stage_id = "configure"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        fstab = f"{root}/etc/fstab"
        fstab_backup = f"{fstab}.pre-genfstab"
        return [
            step(
                "generateFstab",
                cmd("cp", "-p", fstab, fstab_backup),
                cmd("sh", "-c", f"genfstab -U {root} >> {fstab}"),
                description="Append mounted filesystems to fstab",
                compensation=(cmd("mv", fstab_backup, fstab),),
            ),
            step(
                "setTimezone",
                chroot_cmd(root, "ln", "-sf", f"/usr/share/zoneinfo/{session.timezone}", "/etc/localtime"),
                idempotent=True,
            ),
            step("syncHardwareClock", chroot_cmd(root, "hwclock", "--systohc"), idempotent=True),
            step("writeHostname", write_file(f"{root}/etc/hostname", session.hostname + "\n"), idempotent=True),
            step("writeLocaleConf", write_file(f"{root}/etc/locale.conf", f"LANG={LOCALE}\n"), idempotent=True),
            step(
                "generateLocale",
                chroot_cmd(root, "sed", "-i", f"s/^#{LOCALE} UTF-8/{LOCALE} UTF-8/", "/etc/locale.gen"),
                chroot_cmd(root, "locale-gen"),
                idempotent=True,
            ),
            step("writeVconsoleConf", write_file(f"{root}/etc/vconsole.conf", f"KEYMAP={KEYMAP}\n"), idempotent=True),
            step("writeHosts", write_file(f"{root}/etc/hosts", render_hosts(session.hostname)), idempotent=True),
            step(
                "setRootPassword",
                cmd("chpasswd", "--root", root, input_text=f"root:{session.password}\n", secret=True),
                idempotent=True,
            ),
            step("setRootShell", chroot_cmd(root, "chsh", "-s", "/bin/zsh", "root"), idempotent=True),
            step(
                "installGrub",
                chroot_cmd(
                    root,
                    "grub-install",
                    "--target=x86_64-efi",
                    "--efi-directory=/boot/efi",
                    "--bootloader-id=GRUB",
                ),
                precondition=EfiFirmware(),
                idempotent=True,
            ),
            step(
                "configureGrub",
                chroot_cmd(root, "grub-mkconfig", "-o", "/boot/grub/grub.cfg"),
                idempotent=True,
            ),
        ]
