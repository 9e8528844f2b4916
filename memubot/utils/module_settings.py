"""
Per-instance module settings

Each module kind has its own settings type. Settings travel as plain
dictionaries tagged with a "kind" field.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core.instance_registry import TaskKind
from ..utils.logger import get_logger
from ..utils.exceptions import ConfigurationError

logger = get_logger(__name__)

RESOURCE_TYPES = ("Food", "Wood", "Stone", "Iron")


@dataclass
class MarchSetting:
    """Which resource a march should gather, and at what level"""
    march_number: int
    resource_type: str
    level: int = 1

    def __post_init__(self):
        if self.resource_type not in RESOURCE_TYPES:
            raise ConfigurationError(f"Unknown resource type '{self.resource_type}', "
                                     f"expected one of {', '.join(RESOURCE_TYPES)}")
        if not 1 <= self.level <= 8:
            raise ConfigurationError(f"March level must be 1-8, got {self.level}")

    def __str__(self) -> str:
        return f"March {self.march_number}: {self.resource_type} Lv.{self.level}"


@dataclass
class AutoStartGameSettings:
    enabled: bool = False
    attempts: int = 10

    kind = TaskKind.AUTO_START

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'enabled': self.enabled, 'attempts': self.attempts}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoStartGameSettings":
        return cls(enabled=bool(data.get('enabled', False)), attempts=int(data.get('attempts', 10)))


def _default_marches() -> List[MarchSetting]:
    return [MarchSetting(1, "Food", 1), MarchSetting(2, "Wood", 1)]


@dataclass
class GatherResourcesSettings:
    enabled: bool = False
    number_of_marches: int = 2
    marches: List[MarchSetting] = field(default_factory=_default_marches)

    kind = TaskKind.AUTO_GATHER

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'enabled': self.enabled,
            'number_of_marches': self.number_of_marches,
            'marches': [
                {'march_number': m.march_number, 'resource_type': m.resource_type, 'level': m.level}
                for m in self.marches
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatherResourcesSettings":
        marches = data.get('marches')
        return cls(
            enabled=bool(data.get('enabled', False)),
            number_of_marches=int(data.get('number_of_marches', 2)),
            marches=[MarchSetting(**m) for m in marches] if marches is not None else _default_marches(),
        )


ModuleSettings = Union[AutoStartGameSettings, GatherResourcesSettings]

SETTINGS_TYPES = {
    TaskKind.AUTO_START.value: AutoStartGameSettings,
    TaskKind.AUTO_GATHER.value: GatherResourcesSettings,
}


def encode_settings(settings: ModuleSettings) -> Dict[str, Any]:
    return settings.to_dict()


def decode_settings(data: Dict[str, Any]) -> ModuleSettings:
    """Rebuild settings from a dictionary produced by encode_settings"""
    kind = data.get('kind')
    settings_cls = SETTINGS_TYPES.get(kind)
    if settings_cls is None:
        raise ConfigurationError(f"Unknown module kind: {kind!r}")
    try:
        return settings_cls.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid settings for module {kind}: {e}")


class ModuleConfigStore:
    """
    In-memory module settings per instance, owned by whoever creates it

    Unset modules read back as their defaults (disabled).
    """

    def __init__(self):
        self._settings: Dict[int, Dict[TaskKind, ModuleSettings]] = {}
        self._lock = threading.Lock()

    def get(self, instance_index: int, kind: TaskKind) -> ModuleSettings:
        with self._lock:
            settings = self._settings.get(instance_index, {}).get(kind)
        if settings is None:
            return SETTINGS_TYPES[kind.value]()
        return settings

    def set(self, instance_index: int, settings: ModuleSettings) -> None:
        with self._lock:
            self._settings.setdefault(instance_index, {})[settings.kind] = settings
        logger.debug(f"Module {settings.kind.value} settings updated for instance {instance_index}")

    def is_enabled(self, instance_index: int, kind: TaskKind) -> bool:
        return self.get(instance_index, kind).enabled

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            return {
                str(index): [encode_settings(s) for s in modules.values()]
                for index, modules in sorted(self._settings.items())
            }

    @classmethod
    def from_dict(cls, data: Dict[str, List[Dict[str, Any]]]) -> "ModuleConfigStore":
        store = cls()
        for index, modules in (data or {}).items():
            for entry in modules:
                store.set(int(index), decode_settings(entry))
        return store

    def instances(self) -> List[int]:
        with self._lock:
            return sorted(self._settings)

    def clear(self, instance_index: Optional[int] = None) -> None:
        with self._lock:
            if instance_index is None:
                self._settings.clear()
            else:
                self._settings.pop(instance_index, None)
