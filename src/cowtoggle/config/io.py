import copy
import logging
import os
import pathlib
from typing import Any, cast

import pydantic
import ruamel.yaml

from cowtoggle import exceptions
from cowtoggle.config import models

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "COWTOGGLE_CONFIG"

_NOT_FOUND: object = object()

# Module-level cache for merged config to avoid repeated disk I/O
_merged_config_cache: models.CowToggleConfig | None = None

# Explicit config file selected on the command line (takes precedence over the env var)
_config_file_override: pathlib.Path | None = None


def get_global_config_path() -> pathlib.Path:
    """Get user-level config path (~/.config/cowtoggle/config.yaml)."""
    return pathlib.Path.home() / ".config" / "cowtoggle" / "config.yaml"


def get_explicit_config_path() -> pathlib.Path | None:
    """Get the config file named by --config or COWTOGGLE_CONFIG, if any."""
    if _config_file_override is not None:
        return _config_file_override
    env_path = os.environ.get(CONFIG_ENV_VAR)
    return pathlib.Path(env_path) if env_path else None


def set_config_file(path: pathlib.Path | None) -> None:
    """Select an explicit config file and drop the cached merged config."""
    global _config_file_override
    _config_file_override = path
    clear_config_cache()


def _load_yaml(path: pathlib.Path) -> dict[str, Any]:
    """Read one YAML layer; a missing or empty file is an empty layer."""
    try:
        with path.open() as f:
            data = ruamel.yaml.YAML(typ="safe").load(f)
    except FileNotFoundError:
        return {}
    except ruamel.yaml.YAMLError as e:
        raise exceptions.ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise exceptions.ConfigError(f"Cannot read {path}: {e.strerror or e}") from e

    match data:
        case None:
            return {}
        case dict():
            return cast("dict[str, Any]", data)
        case _:
            raise exceptions.ConfigError(f"Config in {path} must be a mapping")


def load_config_file(path: pathlib.Path) -> dict[str, Any]:
    """Load one config layer, returning an empty dict if the file is missing."""
    return _load_yaml(path)


def _lookup(layer: dict[str, Any], key: str) -> Any:
    """Value of a 'section.name' key in a raw layer, or _NOT_FOUND."""
    section, name = key.split(".", 1)
    values = layer.get(section)
    if not isinstance(values, dict) or name not in values:
        return _NOT_FOUND
    return cast("dict[str, Any]", values)[name]


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return base updated by override; nested mappings merge, anything else replaces."""
    merged = copy.deepcopy(base)
    for key, val in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(val, dict):
            merged[key] = deep_merge(
                cast("dict[str, Any]", current), cast("dict[str, Any]", val)
            )
        else:
            merged[key] = copy.deepcopy(val)
    return merged


def get_merged_config() -> models.CowToggleConfig:
    """Load and merge configs: defaults < global < explicit file.

    Results are cached to avoid repeated disk I/O within a single command.
    Call clear_config_cache() to reset (e.g., in tests).
    """
    global _merged_config_cache
    if _merged_config_cache is not None:
        return _merged_config_cache

    merged = models.CowToggleConfig.get_default().model_dump(by_alias=True)

    merged = deep_merge(merged, load_config_file(get_global_config_path()))

    explicit = get_explicit_config_path()
    if explicit is not None:
        if not explicit.exists():
            raise exceptions.ConfigError(f"Config file {explicit} does not exist")
        merged = deep_merge(merged, load_config_file(explicit))

    try:
        _merged_config_cache = models.CowToggleConfig.model_validate(merged)
    except pydantic.ValidationError as e:
        msg = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise exceptions.ConfigValidationError(f"Invalid configuration: {msg}") from None
    logger.debug(f"Loaded config: {_merged_config_cache.model_dump(by_alias=True, mode='json')}")
    return _merged_config_cache


def clear_config_cache() -> None:
    """Clear the merged config cache. Call this when config files change."""
    global _merged_config_cache
    _merged_config_cache = None


def get_config_value(key: str) -> tuple[Any, models.ConfigSource]:
    """Raw value of a dotted key from the highest layer that sets it, with that layer."""
    if not models.is_valid_key(key):
        raise exceptions.ConfigKeyError(f"Unknown config key: '{key}'")

    layers = list[tuple[pathlib.Path, models.ConfigSource]]()
    explicit = get_explicit_config_path()
    if explicit is not None:
        layers.append((explicit, models.ConfigSource.FILE))
    layers.append((get_global_config_path(), models.ConfigSource.GLOBAL))

    for path, source in layers:
        value = _lookup(load_config_file(path), key)
        if value is not _NOT_FOUND:
            return value, source
    return models.get_config_default(key), models.ConfigSource.DEFAULT
