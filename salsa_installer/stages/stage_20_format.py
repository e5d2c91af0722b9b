from __future__ import annotations

from typing import List

from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..plan import Action, step
from ..session import Session


class FormatStage:
    stage_id = "format"
    sequential_only = True
    on_target = False

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        return [
            step(
                "formatESP",
                cmd("mkfs.fat", "-F32", session.efi_partition),
                idempotent=True,
            ),
            step(
                "formatRoot",
                cmd("mkfs.ext4", "-F", session.root_partition),
                idempotent=True,
            ),
        ]
