from __future__ import annotations

import importlib
import logging
import logging.handlers
import os
import pathlib
from typing import NamedTuple, TypedDict, override

import click

from cowtoggle import config as cowtoggle_config
from cowtoggle import exceptions


class _CommandEntry(NamedTuple):
    """Where a subcommand lives and how it is summarised before import."""

    category: str
    module: str
    attr: str
    summary: str


# Subcommands in help order; modules are only imported when the command runs
_COMMANDS: dict[str, _CommandEntry] = {
    "toggle": _CommandEntry(
        "Toggle", "cowtoggle.cli.toggle", "toggle", "Enable or disable CoW on a file or tree."
    ),
    "status": _CommandEntry(
        "Inspection", "cowtoggle.cli.status", "status", "Show the CoW state of files."
    ),
    "doctor": _CommandEntry(
        "Inspection", "cowtoggle.cli.doctor", "doctor", "Check whether a path can be toggled."
    ),
    "config": _CommandEntry(
        "Other", "cowtoggle.cli.config", "config_cmd", "View cowtoggle configuration."
    ),
}

_SYSLOG_SOCKET = "/dev/log"

_LOG_LEVELS = {
    (False, False): logging.INFO,
    (True, False): logging.DEBUG,
    (False, True): logging.WARNING,
}


class CliContext(TypedDict):
    verbose: bool
    quiet: bool


class CowToggleGroup(click.Group):
    """Group that imports subcommands on demand and groups them by category in --help."""

    @override
    def list_commands(self, ctx: click.Context) -> list[str]:
        return list(_COMMANDS)

    @override
    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        entry = _COMMANDS.get(cmd_name)
        if entry is None:
            return None
        return getattr(importlib.import_module(entry.module), entry.attr)

    @override
    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        by_category = dict[str, list[tuple[str, str]]]()
        for name, entry in _COMMANDS.items():
            by_category.setdefault(entry.category, []).append((name, entry.summary))
        for category, rows in by_category.items():
            with formatter.section(f"{category} Commands"):
                formatter.write_dl(rows)


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """Send log records to stderr as bare messages at the level picked by -v/-q."""
    logging.basicConfig(level=_LOG_LEVELS[(verbose, quiet)], format="%(message)s", force=True)


def _setup_syslog() -> None:
    """Mirror errors to syslog under the 'cowtoggle' tag."""
    if not os.path.exists(_SYSLOG_SOCKET):
        logging.getLogger(__name__).debug("Syslog socket not available, not logging to syslog")
        return
    handler = logging.handlers.SysLogHandler(address=_SYSLOG_SOCKET)
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("cowtoggle: [%(levelname)s] %(message)s"))
    logging.getLogger().addHandler(handler)


@click.group(cls=CowToggleGroup)
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    help=f"Config file (default: ${cowtoggle_config.CONFIG_ENV_VAR}, then ~/.config/cowtoggle/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, config_file: pathlib.Path | None) -> None:
    """Safely toggle copy-on-write on files of a btrfs filesystem.

    Files are never modified in place: each one is copied under the desired
    attribute, verified by content hash, and swapped in by atomic rename.
    """
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")
    ctx.obj = CliContext(verbose=verbose, quiet=quiet)
    _setup_logging(verbose, quiet)
    cowtoggle_config.set_config_file(config_file)
    try:
        syslog = cowtoggle_config.get_merged_config().logging.syslog
    except exceptions.ConfigError as e:
        raise click.ClickException(e.format_user_message()) from e
    if syslog:
        _setup_syslog()


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
