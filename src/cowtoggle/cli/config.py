from __future__ import annotations

import json
from typing import Any

import click
import tabulate

from cowtoggle import config, exceptions
from cowtoggle.cli import decorators as cli_decorators


def _display(value: Any) -> str:
    match value:
        case None:
            return "(not set)"
        case list():
            return ",".join(str(v) for v in value)
        case _:
            return str(value)


def _effective(key: str) -> tuple[Any, config.ConfigSource]:
    """Validated value of key plus the layer that supplied it."""
    section, name = key.split(".")
    dumped = config.get_merged_config().model_dump(by_alias=True, mode="json")
    _raw, source = config.get_config_value(key)
    return dumped[section][name], source


@click.group()
def config_cmd() -> None:
    """View cowtoggle configuration."""


@config_cmd.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--describe", is_flag=True, help="Include a description of each key")
@cli_decorators.with_error_handling
def config_list(output_json: bool, describe: bool) -> None:
    """Show every config key with its effective value and source.

    Sources are 'file' (--config or $COWTOGGLE_CONFIG), 'global'
    (~/.config/cowtoggle/config.yaml) or 'default'.
    """
    entries = {key: _effective(key) for key in config.CONFIG_KEY_DESCRIPTIONS}

    if output_json:
        payload = {
            key: {"value": value, "source": str(source)} for key, (value, source) in entries.items()
        }
        click.echo(json.dumps(payload, indent=2))
        return

    rows = list[list[str]]()
    for key, (value, source) in entries.items():
        row = [key, _display(value), str(source)]
        if describe:
            row.append(config.CONFIG_KEY_DESCRIPTIONS[key])
        rows.append(row)
    headers = ["Key", "Value", "Source"] + (["Description"] if describe else [])
    click.echo(tabulate.tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))


@config_cmd.command("get")
@click.argument("key")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@cli_decorators.with_error_handling
def config_get(key: str, output_json: bool) -> None:
    """Print the effective value of one dotted KEY (e.g. hooks.before)."""
    if not config.is_valid_key(key):
        raise exceptions.ConfigKeyError(f"Unknown config key: '{key}'")

    value, source = _effective(key)
    if output_json:
        click.echo(json.dumps({"key": key, "value": value, "source": str(source)}))
    else:
        click.echo(f"{key} = {_display(value)} ({source})")
