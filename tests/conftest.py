"""Shared fixtures: a recording fake runner, an in-memory checkpoint store,
a scripted prompter and a sample session."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from salsa_installer.lib.block import GIB
from salsa_installer.lib.command import CmdResult, Command
from salsa_installer.lib.manifests import load_package_manifest
from salsa_installer.session import Session

PROBES = ("lsblk", "lspci", "findmnt", "test")

LSPCI_INTEL_ONLY = "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620 (rev 07)\n"
CPUINFO_INTEL = "processor\t: 0\nvendor_id\t: GenuineIntel\nmodel name\t: Intel(R) Core(TM)\n"


def lsblk_doc() -> Dict:
    return {
        "blockdevices": [
            {"name": "sda", "size": 100 * GIB, "type": "disk", "mountpoints": [None], "model": "Samsung SSD"},
            {
                "name": "sdb",
                "size": 16 * GIB,
                "type": "disk",
                "mountpoints": [None],
                "model": "USB Stick",
                "children": [
                    {"name": "sdb1", "size": 16 * GIB, "type": "part", "mountpoints": ["/run/archiso/bootmnt"]}
                ],
            },
            {"name": "nvme0n1", "size": 512 * GIB, "type": "disk", "mountpoints": [None], "model": "WD SN770"},
            {"name": "loop0", "size": 800 * 1024 * 1024, "type": "loop", "mountpoints": ["/run/archiso/airootfs"]},
        ]
    }


class FakeRunner:
    """Records every command; answers system probes; fails on request.

    fail(fragment, times=n) makes the next n commands whose rendered argv
    contains fragment exit non-zero (times=None: always).
    """

    def __init__(
        self,
        *,
        lsblk: Optional[Dict] = None,
        lspci: str = LSPCI_INTEL_ONLY,
        cpuinfo: str = CPUINFO_INTEL,
        efi: bool = True,
        mounted: tuple = ("/mnt",),
    ) -> None:
        self.lsblk = lsblk if lsblk is not None else lsblk_doc()
        self.lspci = lspci
        self.cpuinfo = cpuinfo
        self.efi = efi
        self.mounted = set(mounted)
        self.calls: List[Command] = []
        self._rules: List[list] = []
        self._interrupt_on: Optional[str] = None
        self._lock = threading.Lock()

    def fail(self, fragment: str, *, times: Optional[int] = None, returncode: int = 1,
             stdout: str = "", stderr: str = "boom") -> None:
        self._rules.append([fragment, times, returncode, stdout, stderr])

    def interrupt_on(self, fragment: str) -> None:
        self._interrupt_on = fragment

    @property
    def mutations(self) -> List[List[str]]:
        return [list(c.argv) for c in self.calls if c.argv[0] not in PROBES and c.argv[:2] != ("cat", "/proc/cpuinfo")]

    def ran(self, fragment: str) -> int:
        return sum(1 for argv in self.mutations if fragment in " ".join(argv))

    def exec(self, command: Command) -> CmdResult:
        with self._lock:
            self.calls.append(command)
        argv = list(command.argv)
        rendered = " ".join(argv)

        if argv[0] == "lsblk":
            return CmdResult(argv, 0, json.dumps(self.lsblk), "")
        if argv[0] == "lspci":
            return CmdResult(argv, 0, self.lspci, "")
        if argv[:2] == ["cat", "/proc/cpuinfo"]:
            return CmdResult(argv, 0, self.cpuinfo, "")
        if argv[0] == "findmnt":
            return CmdResult(argv, 0 if argv[-1] in self.mounted else 1, "", "")
        if argv[:3] == ["test", "-d", "/sys/firmware/efi"]:
            return CmdResult(argv, 0 if self.efi else 1, "", "")

        if self._interrupt_on and self._interrupt_on in rendered:
            self._interrupt_on = None
            raise KeyboardInterrupt

        with self._lock:
            for rule in self._rules:
                fragment, times, rc, out, err = rule
                if fragment in rendered and times != 0:
                    if times is not None:
                        rule[1] = times - 1
                    return CmdResult(argv, rc, out, err)
        return CmdResult(argv, 0, "", "")


class MemoryCheckpointStore:
    location = "memory://checkpoint"

    def __init__(self, checkpoint=None) -> None:
        self.checkpoint = checkpoint
        self.history: list = []

    def load(self):
        return self.checkpoint

    def save(self, checkpoint) -> None:
        self.checkpoint = checkpoint
        self.history.append(checkpoint)

    def clear(self) -> None:
        self.checkpoint = None


class ScriptedPrompter:
    """Feeds queued answers per field and records what it was told."""

    def __init__(self, answers: Dict[str, list], *, confirm_with: bool = True) -> None:
        self.answers = {k: list(v) for k, v in answers.items()}
        self.confirm_with = confirm_with
        self.reports: List[tuple] = []
        self.shown: List[str] = []
        self.summaries: List[str] = []

    def ask(self, kind) -> str:
        return self.answers[kind.value].pop(0)

    def ask_secret(self, kind, *, confirm: bool = False) -> str:
        return self.answers["password_confirm" if confirm else kind.value].pop(0)

    def confirm(self, summary: str) -> bool:
        self.summaries.append(summary)
        return self.confirm_with

    def report(self, kind, reason: str) -> None:
        self.reports.append((kind.value, reason))

    def show(self, text: str) -> None:
        self.shown.append(text)


@pytest.fixture
def zoneinfo(tmp_path: Path) -> Path:
    root = tmp_path / "zoneinfo"
    for name in ("America/New_York", "Europe/Berlin", "UTC"):
        p = root / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"TZif2")
    return root


@pytest.fixture
def session() -> Session:
    return Session(
        hostname="arch-box",
        timezone="America/New_York",
        username="sam",
        password="s3cret",
        device="sda",
        swap_gib=4,
        device_capacity_gib=100,
    )


@pytest.fixture
def manifest():
    return load_package_manifest()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def store() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()
