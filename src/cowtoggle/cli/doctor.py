from __future__ import annotations

import contextlib
import enum
import os
import pathlib
import shutil
from typing import Literal, TypedDict

import click

from cowtoggle import attrs, config, exceptions, mounts
from cowtoggle.cli import decorators as cli_decorators
from cowtoggle.cli import helpers as cli_helpers
from cowtoggle.types import CowState

_SCRATCH_PREFIX = ".cowtoggle-doctor-scratch."


class CheckStatus(enum.StrEnum):
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


class DoctorCheckEvent(TypedDict):
    """JSONL event for a single doctor check."""

    type: Literal["check"]
    name: str
    status: CheckStatus
    value: str
    details: dict[str, object] | None


class DoctorSummaryEvent(TypedDict):
    """JSONL summary event for doctor command."""

    type: Literal["summary"]
    passed: int
    warnings: int
    errors: int


class DoctorSchemaVersionEvent(TypedDict):
    """Schema version event for doctor JSONL."""

    type: Literal["schema_version"]
    version: int


def _check(
    name: str, status: CheckStatus, value: str, details: dict[str, object] | None = None
) -> DoctorCheckEvent:
    return DoctorCheckEvent(type="check", name=name, status=status, value=value, details=details)


def _skipped_check(name: str, reason: str) -> DoctorCheckEvent:
    """Create a skipped check event for when a prerequisite is missing."""
    return _check(name, CheckStatus.ERROR, "skipped", {"reason": reason})


def _check_mount(path: pathlib.Path) -> tuple[DoctorCheckEvent, mounts.MountInfo | None]:
    """Check the filesystem type of the mount holding path."""
    fstypes = config.get_merged_config().mount.fstypes
    try:
        mount = mounts.find_mount(path)
    except exceptions.CowToggleError as e:
        return _check("mount", CheckStatus.ERROR, "not found", {"error": str(e)}), None

    details: dict[str, object] = {"mount_point": str(mount.mount_point), "device": mount.device}
    if mount.fstype not in fstypes:
        details["error"] = f"{mount.fstype} is not one of: {', '.join(fstypes)}"
        return _check("mount", CheckStatus.ERROR, mount.fstype, details), mount
    return _check("mount", CheckStatus.OK, mount.fstype, details), mount


def _check_datacow(mount: mounts.MountInfo | None) -> DoctorCheckEvent:
    """Check the mount does not disable data CoW."""
    if mount is None:
        return _skipped_check("datacow", "no mount")
    if mount.datacow:
        return _check("datacow", CheckStatus.OK, "enabled", {"options": sorted(mount.options)})
    return _check(
        "datacow",
        CheckStatus.ERROR,
        "disabled",
        {"options": sorted(mount.options), "error": "mounted with nodatacow"},
    )


def _check_attributes(path: pathlib.Path) -> DoctorCheckEvent:
    """Check inode flags can be read on path."""
    try:
        state = attrs.query_state(path)
    except exceptions.InspectionError as e:
        return _check("attributes", CheckStatus.ERROR, "unavailable", {"error": str(e)})
    if state == CowState.NOCOW and path.is_dir():
        return _check(
            "attributes",
            CheckStatus.WARN,
            str(state).upper(),
            {"note": "new files inherit NOCOW here; 'toggle enable' will fail"},
        )
    return _check("attributes", CheckStatus.OK, str(state).upper())


def _check_atomic_rename(directory: pathlib.Path) -> DoctorCheckEvent:
    """Create and rename a scratch file in directory."""
    src = directory / f"{_SCRATCH_PREFIX}{os.getpid()}"
    dst = directory / f"{_SCRATCH_PREFIX}{os.getpid()}.renamed"
    try:
        fd = os.open(src, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        os.close(fd)
        os.rename(src, dst)
    except OSError as e:
        return _check("atomic_rename", CheckStatus.ERROR, "failed", {"error": e.strerror or str(e)})
    finally:
        for scratch in (src, dst):
            with contextlib.suppress(FileNotFoundError):
                scratch.unlink()
    return _check("atomic_rename", CheckStatus.OK, str(directory))


def _check_free_space(path: pathlib.Path, directory: pathlib.Path) -> DoctorCheckEvent:
    """Check there is room for a full copy of the largest file."""
    needed = 0
    if path.is_file():
        needed = path.stat().st_size
    else:
        for root, _dirs, files in os.walk(path):
            for name in files:
                with contextlib.suppress(OSError):
                    needed = max(needed, os.lstat(os.path.join(root, name)).st_size)
    free = shutil.disk_usage(directory).free
    status = CheckStatus.OK if free >= needed else CheckStatus.ERROR
    return _check("free_space", status, f"{free} bytes", {"needed": needed})


def _print_check_human(check: DoctorCheckEvent) -> None:
    """Print a check result in human-readable format."""
    match check["status"]:
        case CheckStatus.OK:
            indicator = "[OK]"
        case CheckStatus.WARN:
            indicator = "[WARN]"
        case CheckStatus.ERROR:
            indicator = "[ERROR]"

    label = check["name"].replace("_", " ")
    click.echo(f"  {label.capitalize():.<30} {check['value']} {indicator}")

    details = check["details"]
    if check["status"] == CheckStatus.ERROR and details and "error" in details:
        click.echo(f"    Error: {details['error']}")


@cli_decorators.cowtoggle_command()
@click.argument("path", type=click.Path(exists=True, path_type=pathlib.Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSONL")
def doctor(path: pathlib.Path, as_json: bool) -> None:
    """Check whether files under PATH can have CoW toggled safely."""
    directory = path if path.is_dir() else path.parent

    checks = list[DoctorCheckEvent]()
    mount_check, mount = _check_mount(path)
    checks.append(mount_check)
    checks.append(_check_datacow(mount))
    checks.append(_check_attributes(path))
    checks.append(_check_atomic_rename(directory))
    checks.append(_check_free_space(path, directory))

    passed = sum(1 for c in checks if c["status"] == CheckStatus.OK)
    warnings = sum(1 for c in checks if c["status"] == CheckStatus.WARN)
    errors = sum(1 for c in checks if c["status"] == CheckStatus.ERROR)

    if as_json:
        cli_helpers.emit_jsonl(
            DoctorSchemaVersionEvent(
                type="schema_version", version=cli_helpers.JSONL_SCHEMA_VERSION
            )
        )
        for check in checks:
            cli_helpers.emit_jsonl(check)
        cli_helpers.emit_jsonl(
            DoctorSummaryEvent(type="summary", passed=passed, warnings=warnings, errors=errors)
        )
    else:
        click.echo(f"cowtoggle check for {path}")
        click.echo()
        for check in checks:
            _print_check_human(check)
        click.echo()
        if errors > 0:
            click.echo(f"{errors} error(s), {warnings} warning(s), {passed} passed")
        elif warnings > 0:
            click.echo(f"All checks passed with {warnings} warning(s).")
        else:
            click.echo("All checks passed.")

    if errors > 0:
        raise SystemExit(1)
