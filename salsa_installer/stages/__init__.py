from .stage_10_partition import PartitionStage
from .stage_20_format import FormatStage
from .stage_30_mount import MountStage
from .stage_40_install import InstallStage
from .stage_50_configure import ConfigureStage
from .stage_60_users import UsersStage
from .stage_70_services import ServicesStage
from .stage_80_shell import ShellStage
from .stage_90_desktop import DesktopStage
from .stage_99_finalize import FinalizeStage

# Fixed dependency order; stages never run out of this sequence.
STAGES = (
    PartitionStage(),
    FormatStage(),
    MountStage(),
    InstallStage(),
    ConfigureStage(),
    UsersStage(),
    ServicesStage(),
    ShellStage(),
    DesktopStage(),
    FinalizeStage(),
)

__all__ = [
    "STAGES",
    "PartitionStage",
    "FormatStage",
    "MountStage",
    "InstallStage",
    "ConfigureStage",
    "UsersStage",
    "ServicesStage",
    "ShellStage",
    "DesktopStage",
    "FinalizeStage",
]
