from __future__ import annotations

import pydantic
import pytest

from cowtoggle.config import models


def test_copy_section_uses_alias() -> None:
    cfg = models.CowToggleConfig.model_validate({"copy": {"chunk_size": 8192}})

    assert cfg.copy_.chunk_size == 8192
    assert cfg.model_dump(by_alias=True)["copy"]["chunk_size"] == 8192


def test_fstypes_comma_string() -> None:
    mount = models.MountConfig.model_validate({"fstypes": "btrfs, bcachefs"})

    assert mount.fstypes == ["btrfs", "bcachefs"]


def test_extra_sections_forbidden() -> None:
    with pytest.raises(pydantic.ValidationError):
        models.CowToggleConfig.model_validate({"cache": {"dir": "/tmp"}})


def test_settle_delay_non_negative() -> None:
    with pytest.raises(pydantic.ValidationError):
        models.HooksConfig(settle_delay=-1)


@pytest.mark.parametrize("key", list(models.CONFIG_KEY_DESCRIPTIONS))
def test_every_described_key_has_default(key: str) -> None:
    section, subkey = key.split(".")
    defaults = models.CowToggleConfig.get_default().model_dump(by_alias=True)

    assert subkey in defaults[section]


def test_get_config_default() -> None:
    assert models.get_config_default("verify.algorithm") == "xxh64"
    assert models.get_config_default("mount.fstypes") == ["btrfs"]
    assert models.get_config_default("hooks.before") is None
    assert models.get_config_default("nope.nope") is None


def test_is_valid_key() -> None:
    assert models.is_valid_key("hooks.settle_delay")
    assert not models.is_valid_key("hooks")
