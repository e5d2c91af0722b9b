import pytest

from salsa_installer.lib.manifests import PackageManifest, load_package_manifest


def test_bundled_manifest():
    m = load_package_manifest()
    assert "base" in m.base and "grub" in m.base
    assert m.graphics["nvidia"] == ("nvidia", "nvidia-utils", "nvidia-settings")
    assert m.microcode["amd"] == ("amd-ucode",)
    assert "bspwm" in m.desktop
    assert m.yay_repo.endswith("yay.git")


def test_custom_manifest(tmp_path):
    path = tmp_path / "packages.yaml"
    path.write_text("base: [base, linux]\ngraphics:\n  amd: [xf86-video-amdgpu]\n")
    m = load_package_manifest(str(path))
    assert m.base == ("base", "linux")
    assert m.graphics == {"amd": ("xf86-video-amdgpu",)}
    assert m.desktop == ()
    assert m.dotfiles_repo is None


def test_base_required():
    with pytest.raises(ValueError):
        PackageManifest.from_raw({"desktop": ["bspwm"]})


def test_package_lists_must_be_lists():
    with pytest.raises(ValueError):
        PackageManifest.from_raw({"base": "base linux"})
    with pytest.raises(ValueError):
        PackageManifest.from_raw({"base": ["base"], "graphics": ["intel"]})
