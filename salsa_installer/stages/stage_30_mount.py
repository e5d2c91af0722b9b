from __future__ import annotations

from typing import List

from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..plan import Action, step
from ..preconditions import Mounted
from ..session import Session


class MountStage:
    stage_id = "mount"
    sequential_only = True
    on_target = False

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        efi_dir = f"{root}/boot/efi"
        return [
            step(
                "mountRoot",
                cmd("mount", session.root_partition, root),
                compensation=(cmd("umount", root),),
            ),
            step(
                "createEfiDir",
                cmd("mkdir", "-p", efi_dir),
                precondition=Mounted(root),
                idempotent=True,
            ),
            step(
                "mountESP",
                cmd("mount", session.efi_partition, efi_dir),
                precondition=Mounted(root),
                compensation=(cmd("umount", efi_dir),),
            ),
        ]
