"""
Tests for per-instance module settings
"""

import pytest

from memubot.core.instance_registry import TaskKind
from memubot.utils.exceptions import ConfigurationError
from memubot.utils.module_settings import (
    AutoStartGameSettings,
    GatherResourcesSettings,
    MarchSetting,
    ModuleConfigStore,
    decode_settings,
    encode_settings,
)


def test_settings_are_tagged_by_kind():
    encoded = encode_settings(AutoStartGameSettings(enabled=True, attempts=4))

    assert encoded == {'kind': 'auto_start_game', 'enabled': True, 'attempts': 4}
    assert decode_settings(encoded) == AutoStartGameSettings(enabled=True, attempts=4)


def test_gather_settings_keep_marches():
    settings = GatherResourcesSettings(enabled=True, number_of_marches=1, marches=[MarchSetting(1, "Iron", 5)])

    decoded = decode_settings(encode_settings(settings))

    assert isinstance(decoded, GatherResourcesSettings)
    assert decoded.marches == [MarchSetting(1, "Iron", 5)]
    assert decoded.number_of_marches == 1


def test_gather_defaults():
    settings = GatherResourcesSettings()

    assert not settings.enabled
    assert [str(m) for m in settings.marches] == ["March 1: Food Lv.1", "March 2: Wood Lv.1"]


def test_unknown_kind_is_rejected():
    with pytest.raises(ConfigurationError):
        decode_settings({'kind': 'build_castle', 'enabled': True})


def test_invalid_march_is_rejected():
    with pytest.raises(ConfigurationError):
        MarchSetting(1, "Gold", 1)
    with pytest.raises(ConfigurationError):
        decode_settings({'kind': 'gather_resources', 'marches': [{'march_number': 1, 'resource_type': 'Food', 'level': 9}]})


def test_store_defaults_to_disabled():
    store = ModuleConfigStore()

    assert not store.is_enabled(0, TaskKind.AUTO_START)
    assert isinstance(store.get(0, TaskKind.AUTO_GATHER), GatherResourcesSettings)


def test_store_round_trips_through_dicts():
    store = ModuleConfigStore()
    store.set(0, AutoStartGameSettings(enabled=True))
    store.set(2, GatherResourcesSettings(enabled=True))

    restored = ModuleConfigStore.from_dict(store.to_dict())

    assert restored.instances() == [0, 2]
    assert restored.is_enabled(0, TaskKind.AUTO_START)
    assert not restored.is_enabled(0, TaskKind.AUTO_GATHER)
    assert restored.get(2, TaskKind.AUTO_GATHER) == GatherResourcesSettings(enabled=True)


def test_store_clear():
    store = ModuleConfigStore()
    store.set(0, AutoStartGameSettings(enabled=True))

    store.clear(0)

    assert store.instances() == []
