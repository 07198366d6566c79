from __future__ import annotations

import json
import os
import pathlib
from typing import TYPE_CHECKING, Any

import pytest

from cowtoggle import attrs, cli, engine
from cowtoggle.types import CowState

if TYPE_CHECKING:
    import click.testing
    from conftest import FakeInodeFlags


pytestmark = pytest.mark.usefixtures("btrfs_mount", "fast_config")


def _events(output: str) -> list[dict[str, Any]]:
    return [json.loads(line) for line in output.splitlines() if line.strip()]


def test_toggle_disable_file(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    target = tmp_path / "disk.img"
    target.write_bytes(b"x" * 4096)

    result = runner.invoke(cli.cli, ["toggle", "disable", str(target)])

    assert result.exit_code == 0, result.output
    assert "[CONVERTED]" in result.stdout
    assert f"SUCCESS: CoW disable completed for {target}" in result.stdout
    assert attrs.query_state(target) == CowState.NOCOW
    assert target.read_bytes() == b"x" * 4096


def test_toggle_enable_already_cow(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    target = tmp_path / "disk.img"
    target.write_bytes(b"data")

    result = runner.invoke(cli.cli, ["toggle", "enable", str(target)])

    assert result.exit_code == 0, result.output
    assert "[UNCHANGED]" in result.stdout
    assert "already CoW enabled" in result.stdout


def test_toggle_missing_target(runner: click.testing.CliRunner, tmp_path: pathlib.Path) -> None:
    result = runner.invoke(cli.cli, ["toggle", "disable", str(tmp_path / "missing")])

    assert result.exit_code != 0
    assert "doesn't exist" in result.output


def test_toggle_invalid_mode(runner: click.testing.CliRunner, tmp_path: pathlib.Path) -> None:
    result = runner.invoke(cli.cli, ["toggle", "flip", str(tmp_path)])

    assert result.exit_code == 2
    assert "Invalid value" in result.output


def test_toggle_symlink_target_fails(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    real = tmp_path / "real.img"
    real.write_bytes(b"data")
    link = tmp_path / "link.img"
    link.symlink_to(real)

    result = runner.invoke(cli.cli, ["toggle", "disable", str(link)])

    assert result.exit_code == 1
    assert "symlink" in result.output
    assert "during validating" in result.output


def test_toggle_stale_state_shows_tip(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    target = tmp_path / "disk.img"
    target.write_bytes(b"data")
    leftover = target.with_name(f"{target.name}.cowtoggle-backup.12345")
    leftover.write_bytes(b"old")

    result = runner.invoke(cli.cli, ["toggle", "disable", str(target)])

    assert result.exit_code == 1
    assert str(leftover) in result.output
    assert "Tip:" in result.output


def test_toggle_directory(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.img").write_bytes(b"a")
    (tmp_path / "sub" / "b.img").write_bytes(b"b")
    (tmp_path / "link").symlink_to(tmp_path / "a.img")

    result = runner.invoke(cli.cli, ["toggle", "disable", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "2 converted, 0 unchanged, 1 skipped, 0 failed" in result.stdout
    assert attrs.query_state(tmp_path / "sub" / "b.img") == CowState.NOCOW


def test_toggle_directory_partial_failure(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    (tmp_path / "a.img").write_bytes(b"a")
    (tmp_path / "b.img").write_bytes(b"b")
    os.link(tmp_path / "b.img", tmp_path / "b-hardlink.img")

    result = runner.invoke(cli.cli, ["toggle", "disable", str(tmp_path)])

    assert result.exit_code == 1
    assert "1 converted, 0 unchanged, 0 skipped, 2 failed" in result.stdout
    assert f"FAILED: CoW disable did not complete for {tmp_path}" in result.output
    assert attrs.query_state(tmp_path / "a.img") == CowState.NOCOW


def test_toggle_json(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    (tmp_path / "a.img").write_bytes(b"a" * 10)

    result = runner.invoke(cli.cli, ["--quiet", "toggle", "disable", str(tmp_path), "--json"])

    assert result.exit_code == 0, result.output
    events = _events(result.stdout)
    assert events[0] == {"type": "schema_version", "version": 1}
    assert events[1]["type"] == "result"
    assert events[1]["result"]["status"] == "converted"
    assert events[1]["result"]["state"] == "nocow"
    assert events[1]["result"]["size"] == 10
    assert events[-1]["type"] == "summary"
    assert events[-1]["succeeded"] is True
    assert events[-1]["counts"]["converted"] == 1


def test_toggle_json_single_file_failure(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    target = tmp_path / "disk.img"
    target.write_bytes(b"data")
    engine.staging_path_for(target).write_bytes(b"")

    result = runner.invoke(cli.cli, ["--quiet", "toggle", "disable", str(target), "--json"])

    assert result.exit_code == 1
    events = _events(result.stdout)
    assert events[1]["result"]["status"] == "failed"
    assert events[1]["result"]["step"] == "validating"
    assert events[-1]["succeeded"] is False


def test_toggle_uses_configured_hooks(
    runner: click.testing.CliRunner,
    tmp_path: pathlib.Path,
    fake_attrs: FakeInodeFlags,
    fast_config: pathlib.Path,
) -> None:
    log = tmp_path / "hooks.log"
    fast_config.write_text(
        "hooks:\n"
        "  settle_delay: 0\n"
        f"  before: sh -c 'echo pause >> {log}'\n"
        f"  after: sh -c 'echo resume >> {log}'\n"
    )
    target = tmp_path / "disk.img"
    target.write_bytes(b"data")

    result = runner.invoke(cli.cli, ["toggle", "disable", str(target)])

    assert result.exit_code == 0, result.output
    assert log.read_text().splitlines() == ["pause", "resume"]


def test_toggle_config_option(
    runner: click.testing.CliRunner, tmp_path: pathlib.Path, fake_attrs: FakeInodeFlags
) -> None:
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("hooks:\n  before: 'false'\n  settle_delay: 0\n")
    target = tmp_path / "disk.img"
    target.write_bytes(b"data")

    result = runner.invoke(cli.cli, ["--config", str(cfg), "toggle", "disable", str(target)])

    assert result.exit_code == 1
    assert "Quiesce hook exited with 1" in result.output
    assert attrs.query_state(target) == CowState.COW
