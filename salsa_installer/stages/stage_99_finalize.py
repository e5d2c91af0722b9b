from __future__ import annotations

import shlex
from typing import List

from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..plan import Action, step
from ..session import Session


class FinalizeStage:
    stage_id = "finalize"
    sequential_only = True
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        root = session.target_root
        return [
            # fuser exits 1 when nothing holds the mount.
            step(
                "releaseTarget",
                cmd("sh", "-c", f"fuser -km {shlex.quote(root)} || true"),
                idempotent=True,
            ),
            step("unmountTarget", cmd("umount", "-R", root)),
        ]
