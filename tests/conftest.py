from __future__ import annotations

import os
import pathlib
import sys
from typing import TYPE_CHECKING

import click.testing
import pytest

from cowtoggle import attrs, config, mounts

# Add tests directory to sys.path so helpers.py can be imported
_tests_dir = pathlib.Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

if TYPE_CHECKING:
    from collections.abc import Generator

    from pytest_mock import MockerFixture


class FakeInodeFlags:
    """In-memory inode flag store keyed by (st_dev, st_ino).

    Keying by inode means flags follow a file across renames, like the real
    attribute does.
    """

    flags: dict[tuple[int, int], int]
    honour_set: bool

    def __init__(self) -> None:
        self.flags = {}
        self.honour_set = True

    @staticmethod
    def _key(st: os.stat_result) -> tuple[int, int]:
        return (st.st_dev, st.st_ino)

    def read(self, fd: int) -> int:
        return self.flags.get(self._key(os.fstat(fd)), 0)

    def write(self, fd: int, value: int) -> None:
        if self.honour_set:
            self.flags[self._key(os.fstat(fd))] = value

    def mark_nocow(self, path: pathlib.Path) -> None:
        key = self._key(os.stat(path))
        self.flags[key] = self.flags.get(key, 0) | attrs.FS_NOCOW_FL


@pytest.fixture
def fake_attrs(mocker: MockerFixture) -> FakeInodeFlags:
    """Replace the inode flag ioctls with an in-memory store."""
    fake = FakeInodeFlags()
    mocker.patch.object(attrs, "_read_flags", side_effect=fake.read)
    mocker.patch.object(attrs, "_write_flags", side_effect=fake.write)
    return fake


@pytest.fixture
def btrfs_mount(mocker: MockerFixture) -> mounts.MountInfo:
    """Make every path appear to live on a plain btrfs mount."""
    mount = mounts.MountInfo(
        device="/dev/fake0",
        mount_point=pathlib.Path("/"),
        fstype="btrfs",
        options=frozenset({"rw", "relatime", "space_cache=v2"}),
    )
    mocker.patch.object(mounts, "find_mount", return_value=mount)
    return mount


@pytest.fixture(autouse=True)
def reset_cowtoggle_state(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Generator[None]:
    """Isolate config from the real home directory and skip filesystem-wide syncs."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv(config.CONFIG_ENV_VAR, raising=False)
    monkeypatch.setattr(os, "sync", lambda: None)
    config.set_config_file(None)
    yield
    config.set_config_file(None)


@pytest.fixture
def fast_config(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> pathlib.Path:
    """Config file without settle delay, selected via COWTOGGLE_CONFIG."""
    path = tmp_path_factory.mktemp("config") / "config.yaml"
    path.write_text("hooks:\n  settle_delay: 0\n")
    monkeypatch.setenv(config.CONFIG_ENV_VAR, str(path))
    config.clear_config_cache()
    return path


@pytest.fixture
def runner() -> click.testing.CliRunner:
    """Create a CLI runner for testing."""
    return click.testing.CliRunner()
