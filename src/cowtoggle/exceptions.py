from __future__ import annotations

from typing import TYPE_CHECKING, override

if TYPE_CHECKING:
    import pathlib

    from cowtoggle.types import ToggleStep


class CowToggleError(Exception):
    """Base exception for cowtoggle errors."""

    step: ToggleStep | None = None

    def format_user_message(self) -> str:
        """Format a user-friendly error message."""
        if self.step is None:
            return str(self)
        return f"{self} (during {self.step.replace('_', ' ')})"

    def get_suggestion(self) -> str | None:
        """Return actionable suggestion for resolving the error."""
        return None


class ValidationError(CowToggleError):
    """Raised when a target, mode or environment fails validation."""

    pass


class UnsupportedMountError(ValidationError):
    """Raised when the target's filesystem cannot honour the CoW attribute."""

    @override
    def get_suggestion(self) -> str:
        return "Run 'cowtoggle doctor <path>' to inspect the mount; remount without nodatacow"


class TargetBusyError(ValidationError):
    """Raised when another process holds the toggle lock on the same file."""

    @override
    def get_suggestion(self) -> str:
        return "Wait for the other cowtoggle process to finish"


class StaleStateError(CowToggleError):
    """Raised when staging or backup artifacts from an earlier run exist."""

    _artifacts: list[pathlib.Path]

    def __init__(self, message: str, artifacts: list[pathlib.Path] | None = None) -> None:
        self._artifacts = artifacts or []
        super().__init__(message)

    @property
    def artifacts(self) -> list[pathlib.Path]:
        return list(self._artifacts)

    @override
    def format_user_message(self) -> str:
        msg = super().format_user_message()
        if self._artifacts:
            listing = "\n".join(f"  - {p}" for p in self._artifacts)
            msg += f"\n{listing}"
        return msg

    @override
    def get_suggestion(self) -> str:
        return (
            "Inspect the leftover files and remove them once you are sure they hold no data "
            "you need (a backup file may be the only copy of the original)"
        )

    @override
    def __reduce__(self) -> tuple[type, tuple[str, list[pathlib.Path]]]:
        return (self.__class__, (str(self), self._artifacts))


class InspectionError(CowToggleError):
    """Raised when the CoW attribute cannot be queried or set."""

    @override
    def get_suggestion(self) -> str:
        return "Check that the file is readable and lives on a filesystem with inode flags (btrfs)"


class FileIOError(CowToggleError):
    """Raised when reading or copying file content fails."""

    pass


class VerificationError(CowToggleError):
    """Raised when the copied content does not match the source."""

    @override
    def get_suggestion(self) -> str:
        return "Quiesce applications writing to the file (see hooks.before) and retry"


class AttributeMismatchError(CowToggleError):
    """Raised when the staging file did not take the requested attribute."""

    @override
    def get_suggestion(self) -> str:
        return (
            "The filesystem ignored the attribute request. Check the mount options, and whether "
            "the parent directory carries +C (new files inherit it)"
        )


class ReplacementError(CowToggleError):
    """Raised when the rename sequence swapping in the new file fails."""

    pass


class HookError(CowToggleError):
    """Raised when a quiesce or resume hook fails."""

    @override
    def get_suggestion(self) -> str:
        return "Check the hooks.before / hooks.after commands in your configuration"


class ConfigError(CowToggleError):
    """Base class for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when config value fails validation."""

    pass


class ConfigKeyError(ConfigError):
    """Raised when config key is unknown or invalid."""

    @override
    def get_suggestion(self) -> str:
        return "Run 'cowtoggle config list' to see available config keys"
