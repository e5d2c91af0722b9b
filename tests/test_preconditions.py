import pytest

from conftest import FakeRunner, lsblk_doc
from salsa_installer.errors import EnvironmentQueryFailed
from salsa_installer.lib.command import CmdResult
from salsa_installer.preconditions import (
    ActionContext,
    AllOf,
    CpuVendor,
    DeviceIdle,
    EfiFirmware,
    GpuVendor,
    Mounted,
)

HYBRID = (
    "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 630\n"
    "01:00.0 3D controller: NVIDIA Corporation GP107M\n"
)


def _ctx(runner, session):
    return ActionContext(runner=runner, session=session)


def test_device_idle(session):
    assert DeviceIdle("sda").check(_ctx(FakeRunner(), session))
    assert not DeviceIdle("sdb").check(_ctx(FakeRunner(), session))
    assert not DeviceIdle("sdz").check(_ctx(FakeRunner(), session))


def test_device_idle_notices_new_mounts(session):
    doc = lsblk_doc()
    doc["blockdevices"][0]["children"] = [{"name": "sda2", "size": 1, "type": "part", "mountpoints": ["/mnt"]}]
    assert not DeviceIdle("sda").check(_ctx(FakeRunner(lsblk=doc), session))


def test_mounted(session):
    runner = FakeRunner(mounted=("/mnt",))
    assert Mounted("/mnt").check(_ctx(runner, session))
    assert not Mounted("/mnt/boot/efi").check(_ctx(runner, session))


def test_mounted_probe_error_raises(session):
    class _Broken(FakeRunner):
        def exec(self, command):
            return CmdResult(list(command.argv), 32, "", "findmnt: bad usage")

    with pytest.raises(EnvironmentQueryFailed):
        Mounted("/mnt").check(_ctx(_Broken(), session))


def test_efi_firmware(session):
    assert EfiFirmware().check(_ctx(FakeRunner(efi=True), session))
    assert not EfiFirmware().check(_ctx(FakeRunner(efi=False), session))


def test_all_of_requires_every_predicate(session):
    both = AllOf((Mounted("/mnt"), EfiFirmware()))
    assert both.check(_ctx(FakeRunner(), session))
    assert not both.check(_ctx(FakeRunner(efi=False), session))
    assert not both.check(_ctx(FakeRunner(mounted=()), session))
    assert both.describe() == "/mnt is mounted and live environment booted in UEFI mode"


def test_gpu_vendor_exclusion(session):
    runner = FakeRunner(lspci=HYBRID)
    ctx = _ctx(runner, session)
    assert GpuVendor("nvidia").check(ctx)
    assert GpuVendor("intel").check(ctx)
    assert not GpuVendor("intel", ("nvidia",)).check(ctx)
    assert not GpuVendor("amd").check(ctx)


def test_cpu_vendor(session):
    ctx = _ctx(FakeRunner(), session)
    assert CpuVendor("intel").check(ctx)
    assert not CpuVendor("amd").check(ctx)


def test_predicates_describe_themselves():
    assert GpuVendor("intel", ("nvidia",)).describe() == "intel graphics detected without nvidia"
    assert Mounted("/mnt").describe() == "/mnt is mounted"
