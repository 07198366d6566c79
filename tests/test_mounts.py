from __future__ import annotations

import pathlib
from typing import TYPE_CHECKING

import pytest

from cowtoggle import exceptions, mounts

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

_TABLE = """\
sysfs /sys sysfs rw,nosuid,nodev,noexec,relatime 0 0
/dev/sda2 / ext4 rw,relatime 0 0
/dev/sdb1 /data btrfs rw,relatime,space_cache=v2,subvol=/ 0 0
/dev/sdb1 /data/vms btrfs rw,relatime,nodatacow,subvol=/vms 0 0
/dev/sdc1 /mnt/with\\040space btrfs rw 0 0
garbage
"""


@pytest.fixture
def table() -> list[mounts.MountInfo]:
    return mounts.parse_mounts(_TABLE.splitlines())


def test_parse_mounts(table: list[mounts.MountInfo]) -> None:
    assert len(table) == 5
    data = table[2]
    assert data.device == "/dev/sdb1"
    assert data.mount_point == pathlib.Path("/data")
    assert data.fstype == "btrfs"
    assert "space_cache=v2" in data.options


def test_parse_mounts_unescapes(table: list[mounts.MountInfo]) -> None:
    assert table[4].mount_point == pathlib.Path("/mnt/with space")


@pytest.mark.parametrize(
    ("path", "mount_point"),
    [
        ("/data/file.img", "/data"),
        ("/data/vms/disk.qcow2", "/data/vms"),
        ("/data/vmsx/file", "/data"),
        ("/etc/passwd", "/"),
        ("/mnt/with space/a", "/mnt/with space"),
    ],
)
def test_find_mount_longest_prefix(
    table: list[mounts.MountInfo], path: str, mount_point: str
) -> None:
    assert mounts.find_mount(pathlib.Path(path), table).mount_point == pathlib.Path(mount_point)


def test_find_mount_overmount_last_wins() -> None:
    table = mounts.parse_mounts(
        ["/dev/a / ext4 rw 0 0", "/dev/b /srv ext4 rw 0 0", "/dev/c /srv btrfs rw 0 0"]
    )
    assert mounts.find_mount(pathlib.Path("/srv/x"), table).device == "/dev/c"


def test_find_mount_none() -> None:
    with pytest.raises(exceptions.ValidationError, match="No mount"):
        mounts.find_mount(pathlib.Path("/srv/x"), [])


def test_datacow(table: list[mounts.MountInfo]) -> None:
    assert table[2].datacow
    assert not table[3].datacow


def test_read_mounts_missing(tmp_path: pathlib.Path) -> None:
    with pytest.raises(exceptions.ValidationError, match="Cannot read mount table"):
        mounts.read_mounts(tmp_path / "mounts")


def test_read_mounts_file(tmp_path: pathlib.Path) -> None:
    f = tmp_path / "mounts"
    f.write_text(_TABLE)
    assert len(mounts.read_mounts(f)) == 5


def test_check_cow_support_btrfs(table: list[mounts.MountInfo], mocker: MockerFixture) -> None:
    mocker.patch.object(mounts, "read_mounts", return_value=table)
    mount = mounts.check_cow_support(pathlib.Path("/data/file.img"))
    assert mount.mount_point == pathlib.Path("/data")


def test_check_cow_support_wrong_fstype(
    table: list[mounts.MountInfo], mocker: MockerFixture
) -> None:
    mocker.patch.object(mounts, "read_mounts", return_value=table)
    with pytest.raises(exceptions.UnsupportedMountError, match="ext4"):
        mounts.check_cow_support(pathlib.Path("/etc/passwd"))


def test_check_cow_support_custom_fstypes(
    table: list[mounts.MountInfo], mocker: MockerFixture
) -> None:
    mocker.patch.object(mounts, "read_mounts", return_value=table)
    mounts.check_cow_support(pathlib.Path("/etc/passwd"), fstypes=("btrfs", "ext4"))


def test_check_cow_support_nodatacow(
    table: list[mounts.MountInfo], mocker: MockerFixture
) -> None:
    mocker.patch.object(mounts, "read_mounts", return_value=table)
    with pytest.raises(exceptions.UnsupportedMountError, match="nodatacow"):
        mounts.check_cow_support(pathlib.Path("/data/vms/disk.qcow2"))
