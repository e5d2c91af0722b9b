from __future__ import annotations

from typing import List

from ..lib.manifests import PackageManifest
from ..lib.pkg import pacstrap
from ..plan import Action, step
from ..session import Session


class InstallStage:
    stage_id = "install"
    sequential_only = False
    on_target = True

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        return [
            step(
                "pacstrapBase",
                pacstrap(session.target_root, manifest.base),
                description="Bootstrap the base system",
                idempotent=True,
                uses_package_db=True,
            ),
        ]
