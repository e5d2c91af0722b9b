import json
import random
import re

import pytest

from conftest import lsblk_doc
from salsa_installer.errors import EnvironmentQueryFailed
from salsa_installer.lib.block import list_block_devices, parse_lsblk_json
from salsa_installer.lib.command import CmdResult
from salsa_installer.validate import (
    FieldKind,
    Invalid,
    Valid,
    ValidationContext,
    validate,
)

RFC1123 = re.compile(
    r"^(?=.{1,253}$)([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9-]{0,61}[A-Za-z0-9])"
    r"(\.([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9-]{0,61}[A-Za-z0-9]))*$"
)

ALNUM = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def _devices_ctx(**kwargs) -> ValidationContext:
    devices = parse_lsblk_json(json.dumps(lsblk_doc()))
    return ValidationContext(device_loader=lambda: devices, **kwargs)


# ---------------------------------------------------------------------------
# Hostname
# ---------------------------------------------------------------------------

def _random_label(rng: random.Random) -> str:
    kind = rng.random()
    if kind < 0.6:
        n = rng.randint(1, 20)
        body = "".join(rng.choice(ALNUM + "-") for _ in range(n))
        return body
    if kind < 0.7:
        return "".join(rng.choice(ALNUM) for _ in range(rng.randint(60, 66)))
    if kind < 0.8:
        return ""
    return "".join(rng.choice(ALNUM + "-_ .!") for _ in range(rng.randint(1, 8)))


def test_hostname_matches_rfc1123_for_generated_names():
    rng = random.Random(1123)
    seen_valid = seen_invalid = 0
    for _ in range(2000):
        labels = [_random_label(rng) for _ in range(rng.randint(1, 5))]
        name = ".".join(labels)
        result = validate(FieldKind.HOSTNAME, name, ValidationContext())
        expected = bool(RFC1123.match(name))
        assert result.ok is expected, name
        seen_valid += expected
        seen_invalid += not expected
    assert seen_valid > 100 and seen_invalid > 100


def test_hostname_total_length_limit():
    label = "a" * 63
    name = ".".join([label] * 4)[:253]
    assert len(name) == 253
    assert validate(FieldKind.HOSTNAME, name, ValidationContext()).ok
    assert not validate(FieldKind.HOSTNAME, name + "b", ValidationContext()).ok


@pytest.mark.parametrize("name", ["arch-box", "a", "host1.example.com", "A-1.b-2"])
def test_hostname_valid(name):
    assert validate(FieldKind.HOSTNAME, name, ValidationContext()) == Valid(name)


@pytest.mark.parametrize("name", ["", "-lead", "trail-", "under_score", "a..b", "dot.", "x" * 64, "arch-box\n"])
def test_hostname_invalid(name):
    assert isinstance(validate(FieldKind.HOSTNAME, name, ValidationContext()), Invalid)


# ---------------------------------------------------------------------------
# Username / password
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("name", ["sam", "_svc", "a-b_c9", "x" * 32])
def test_username_valid(name):
    assert validate(FieldKind.USERNAME, name, ValidationContext()).ok


@pytest.mark.parametrize("name", ["Sam", "9lives", "", "a b", "x" * 33, "root", "nobody", "systemd-network", "sam$"])
def test_username_invalid(name):
    assert not validate(FieldKind.USERNAME, name, ValidationContext()).ok


def test_reserved_username_reason():
    result = validate(FieldKind.USERNAME, "root", ValidationContext())
    assert "reserved" in result.reason


def test_password_rules():
    ctx = ValidationContext()
    assert validate(FieldKind.PASSWORD, "pa:ss word", ctx).ok
    assert not validate(FieldKind.PASSWORD, "", ctx).ok
    assert not validate(FieldKind.PASSWORD, "two\nlines", ctx).ok


# ---------------------------------------------------------------------------
# Timezone
# ---------------------------------------------------------------------------

def test_timezone_known(zoneinfo):
    ctx = ValidationContext(zoneinfo_root=str(zoneinfo))
    assert validate(FieldKind.TIMEZONE, "America/New_York", ctx) == Valid("America/New_York")
    assert validate(FieldKind.TIMEZONE, "UTC", ctx).ok


@pytest.mark.parametrize("tz", ["Mars/Olympus", "America", "../etc/passwd", "", "America//New_York"])
def test_timezone_unknown(zoneinfo, tz):
    ctx = ValidationContext(zoneinfo_root=str(zoneinfo))
    assert not validate(FieldKind.TIMEZONE, tz, ctx).ok


def test_timezone_database_missing_is_environment_failure(tmp_path):
    ctx = ValidationContext(zoneinfo_root=str(tmp_path / "missing"))
    with pytest.raises(EnvironmentQueryFailed):
        validate(FieldKind.TIMEZONE, "UTC", ctx)


# ---------------------------------------------------------------------------
# Device
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [("sda", "sda"), ("/dev/sda", "sda"), ("nvme0n1", "nvme0n1")])
def test_device_valid(raw, expected):
    assert validate(FieldKind.DEVICE, raw, _devices_ctx()) == Valid(expected)


def test_device_unknown():
    result = validate(FieldKind.DEVICE, "sdz", _devices_ctx())
    assert "no block device" in result.reason


def test_device_with_protected_mount_rejected():
    result = validate(FieldKind.DEVICE, "sdb", _devices_ctx())
    assert not result.ok
    assert "/run/archiso/bootmnt" in result.reason


def test_device_must_be_whole_disk():
    assert not validate(FieldKind.DEVICE, "loop0", _devices_ctx()).ok
    assert not validate(FieldKind.DEVICE, "../sda", _devices_ctx()).ok


def test_device_query_failure_raises():
    ctx = ValidationContext(device_loader=lambda: list_block_devices(_FailingLsblk()))
    with pytest.raises(EnvironmentQueryFailed):
        validate(FieldKind.DEVICE, "sda", ctx)


class _FailingLsblk:
    def exec(self, command):
        return CmdResult(list(command.argv), 32, "", "lsblk: not found")


def test_device_inventory_loaded_once():
    calls = []
    devices = parse_lsblk_json(json.dumps(lsblk_doc()))

    def loader():
        calls.append(1)
        return devices

    ctx = ValidationContext(device_loader=loader)
    validate(FieldKind.DEVICE, "sda", ctx)
    validate(FieldKind.DEVICE, "sdz", ctx)
    assert calls == [1]


# ---------------------------------------------------------------------------
# Swap size
# ---------------------------------------------------------------------------

def test_swap_size_valid_iff_within_capacity():
    for capacity in (0, 1, 7, 100):
        ctx = ValidationContext(device_capacity_gib=capacity)
        for n in range(0, capacity + 5):
            assert validate(FieldKind.SWAP_SIZE, str(n), ctx).ok is (n <= capacity)


def test_swap_exceeding_capacity_cites_capacity():
    ctx = ValidationContext(device_capacity_gib=100)
    result = validate(FieldKind.SWAP_SIZE, "200", ctx)
    assert isinstance(result, Invalid)
    assert "exceeds" in result.reason and "100GiB" in result.reason


@pytest.mark.parametrize("raw", ["-1", "4.5", "four", "", "4G"])
def test_swap_not_a_non_negative_integer(raw):
    assert not validate(FieldKind.SWAP_SIZE, raw, ValidationContext(device_capacity_gib=100)).ok


def test_swap_normalized_to_int():
    assert validate(FieldKind.SWAP_SIZE, " 4 ", ValidationContext(device_capacity_gib=100)) == Valid(4)


def test_swap_without_known_capacity_raises():
    with pytest.raises(EnvironmentQueryFailed):
        validate(FieldKind.SWAP_SIZE, "4", ValidationContext())
