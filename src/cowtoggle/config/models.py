import enum
from typing import Annotated, Any, Self

import pydantic

# Type alias for config values after validation
ConfigValue = str | int | float | bool | list[str] | None


class HashAlgorithm(enum.StrEnum):
    """Digest used to verify copies."""

    XXH64 = "xxh64"
    XXH128 = "xxh128"
    SHA256 = "sha256"


class ConfigSource(enum.StrEnum):
    """Where a config value originated from."""

    FILE = "file"
    GLOBAL = "global"
    DEFAULT = "default"
    UNKNOWN = "unknown"


class VerifyConfig(pydantic.BaseModel):
    """Content verification options."""

    algorithm: HashAlgorithm = HashAlgorithm.XXH64


class CopyConfig(pydantic.BaseModel):
    """Staging copy options."""

    chunk_size: Annotated[int, pydantic.Field(gt=0)] = 1024 * 1024
    preserve_metadata: bool = True


class MountConfig(pydantic.BaseModel):
    """Mount precondition options."""

    check: bool = True
    fstypes: list[str] = pydantic.Field(default=["btrfs"])

    @pydantic.field_validator("fstypes", mode="before")
    @classmethod
    def parse_fstypes(cls, v: Any) -> list[str] | Any:
        """Parse comma-separated string into list."""
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @pydantic.field_validator("fstypes")
    @classmethod
    def validate_fstypes(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("fstypes cannot be empty")
        return v


class HooksConfig(pydantic.BaseModel):
    """Quiesce/resume hook options."""

    before: str | None = None
    after: str | None = None
    settle_delay: Annotated[float, pydantic.Field(ge=0)] = 1.0
    timeout: Annotated[float, pydantic.Field(gt=0)] = 300


class LoggingConfig(pydantic.BaseModel):
    """Logging options."""

    syslog: bool = False


class CowToggleConfig(pydantic.BaseModel):
    """Complete cowtoggle configuration schema."""

    model_config = pydantic.ConfigDict(extra="forbid")

    verify: VerifyConfig = pydantic.Field(default_factory=VerifyConfig)
    copy_: CopyConfig = pydantic.Field(default_factory=CopyConfig, alias="copy")
    mount: MountConfig = pydantic.Field(default_factory=MountConfig)
    hooks: HooksConfig = pydantic.Field(default_factory=HooksConfig)
    logging: LoggingConfig = pydantic.Field(default_factory=LoggingConfig)

    @classmethod
    def get_default(cls) -> Self:
        """Get default configuration."""
        return cls()


# Config keys with descriptions (used by `cowtoggle config list`)
CONFIG_KEY_DESCRIPTIONS: dict[str, str] = {
    "verify.algorithm": "Digest used to verify copies (xxh64,xxh128,sha256)",
    "copy.chunk_size": "Read/write chunk size in bytes",
    "copy.preserve_metadata": "Copy mode, timestamps and ownership to the new file",
    "mount.check": "Require a CoW-capable mount before toggling",
    "mount.fstypes": "Filesystem types accepted as CoW-capable",
    "hooks.before": "Command run before each file is toggled ({path} substituted)",
    "hooks.after": "Command run after each file is toggled ({path} substituted)",
    "hooks.settle_delay": "Seconds to wait after syncing, before copying",
    "hooks.timeout": "Hook command timeout (seconds)",
    "logging.syslog": "Also send errors to syslog",
}

_KNOWN_KEYS = frozenset(CONFIG_KEY_DESCRIPTIONS.keys())


def is_valid_key(key: str) -> bool:
    """Check if a config key is known."""
    return key in _KNOWN_KEYS


def get_config_default(key: str) -> ConfigValue:
    """Get the default value for a config key."""
    if not is_valid_key(key):
        return None
    defaults = CowToggleConfig.get_default().model_dump(by_alias=True, mode="json")
    section, subkey = key.split(".")
    return defaults[section][subkey]
