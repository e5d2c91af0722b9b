from salsa_installer.lib.hwdetect import cpu_vendors, gpu_vendors

HYBRID = """\
00:02.0 VGA compatible controller: Intel Corporation CometLake-H GT2 [UHD Graphics] (rev 05)
01:00.0 3D controller: NVIDIA Corporation TU117M [GeForce GTX 1650 Mobile] (rev a1)
00:1f.3 Audio device: Intel Corporation Comet Lake PCH cAVS
"""

RADEON = "06:00.0 VGA compatible controller: Advanced Micro Devices, Inc. [AMD/ATI] Renoir (rev c6)\n"


def test_gpu_vendors_hybrid_laptop():
    assert gpu_vendors(HYBRID) == {"intel", "nvidia"}


def test_gpu_vendors_amd():
    assert gpu_vendors(RADEON) == {"amd"}


def test_gpu_vendors_ignores_non_display_devices():
    assert gpu_vendors("00:1f.3 Audio device: Intel Corporation Comet Lake PCH cAVS\n") == frozenset()
    assert gpu_vendors("") == frozenset()


def test_cpu_vendors():
    info = "processor\t: 0\nvendor_id\t: AuthenticAMD\n\nprocessor\t: 1\nvendor_id\t: AuthenticAMD\n"
    assert cpu_vendors(info) == {"amd"}
    assert cpu_vendors("vendor_id : GenuineIntel\n") == {"intel"}
    assert cpu_vendors("vendor_id : HygonGenuine\n") == frozenset()
