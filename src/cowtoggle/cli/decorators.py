from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

import click

from cowtoggle import exceptions

if TYPE_CHECKING:
    from collections.abc import Callable


def handle_error(e: exceptions.CowToggleError) -> click.ClickException:
    """Convert CowToggleError to user-friendly ClickException."""
    message = e.format_user_message()
    if notes := getattr(e, "__notes__", None):
        message += "".join(f"\n  {note}" for note in notes)
    if suggestion := e.get_suggestion():
        message = f"{message}\n\nTip: {suggestion}"
    return click.ClickException(message)


def with_error_handling[**P, R](func: Callable[P, R]) -> Callable[P, R]:
    """Wrap function with cowtoggle error handling.

    Use this decorator with @group.command() for group subcommands:

        @config_cmd.command("get")
        @with_error_handling
        def config_get(...):
            ...
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except exceptions.CowToggleError as e:
            raise handle_error(e) from e
        except Exception as e:
            raise click.ClickException(repr(e)) from e

    return wrapper


def cowtoggle_command(
    name: str | None = None,
    **attrs: Any,
) -> Callable[[Callable[..., Any]], click.Command]:
    """Create a Click command with cowtoggle error handling.

    Combines @click.command() with automatic error handling that converts
    CowToggleError to user-friendly messages with suggestions.
    """

    def decorator(func: Callable[..., Any]) -> click.Command:
        return click.command(name=name, **attrs)(with_error_handling(func))

    return decorator
