from __future__ import annotations

from typing import List

from ..lib.command import cmd
from ..lib.manifests import PackageManifest
from ..plan import Action, step
from ..preconditions import DeviceIdle
from ..session import Session

ESP_START = "1MiB"
ESP_END = "513MiB"


class PartitionStage:
    """GPT label, EFI system partition, root partition filling the rest.

    None of these can be undone, so none carries a compensation.
    """

    stage_id = "partition"
    sequential_only = True
    on_target = False

    def actions(self, session: Session, manifest: PackageManifest) -> List[Action]:
        disk = session.device_path
        return [
            step(
                "createGPT",
                cmd("parted", disk, "--script", "mklabel", "gpt"),
                description="Write a fresh GPT label",
                precondition=DeviceIdle(session.device),
                idempotent=True,
            ),
            step(
                "createESP",
                cmd("parted", disk, "--script", "mkpart", "ESP", "fat32", ESP_START, ESP_END),
                description="Create the EFI system partition",
            ),
            step(
                "setBootFlag",
                cmd("parted", disk, "--script", "set", "1", "boot", "on"),
                description="Flag partition 1 bootable",
                idempotent=True,
            ),
            step(
                "createRootPartition",
                cmd("parted", disk, "--script", "mkpart", "primary", "ext4", ESP_END, "100%"),
                description="Create the root partition",
            ),
        ]
