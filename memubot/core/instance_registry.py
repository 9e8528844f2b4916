"""
Instance Registry - device instances, their status strings and run-flags
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class InstanceStatus(Enum):
    STOPPED = "Stopped"
    RUNNING = "Running"
    UNKNOWN = "Unknown"


class TaskKind(Enum):
    """Controller kinds; each has its own run-flag per instance"""
    AUTO_START = "auto_start_game"
    AUTO_GATHER = "gather_resources"


StateListener = Callable[["DeviceInstance", str], None]


class DeviceInstance:
    """
    One MEmu instance being automated.

    ``state`` is the human-readable status shown to the operator. Run-flags
    allow at most one controller of each TaskKind at a time; two different
    kinds may run side by side.
    """

    def __init__(self, index: int, name: str = None,
                 status: InstanceStatus = InstanceStatus.UNKNOWN):
        self.index = index
        self._name = name or f"Instance {index}"
        self._status = status
        self._state = "Idle"
        self._flags = {kind: False for kind in TaskKind}
        self._listeners: List[StateListener] = []
        self.last_updated = datetime.now()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        with self._lock:
            return self._name

    @name.setter
    def name(self, value: str) -> None:
        with self._lock:
            self._name = value

    @property
    def status(self) -> InstanceStatus:
        with self._lock:
            return self._status

    @status.setter
    def status(self, value: InstanceStatus) -> None:
        with self._lock:
            self._status = value

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def set_state(self, state: str) -> None:
        """Update the status string; safe to call from any worker thread"""
        with self._lock:
            self._state = state
            self.last_updated = datetime.now()
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self, state)
            except Exception as e:
                logger.warning(f"State listener failed for instance {self.index}: {e}")

    def add_state_listener(self, listener: StateListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def try_acquire(self, kind: TaskKind) -> bool:
        """Atomically set the run-flag for ``kind``; False if it was already set"""
        with self._lock:
            if self._flags[kind]:
                return False
            self._flags[kind] = True
            return True

    def release(self, kind: TaskKind) -> None:
        with self._lock:
            self._flags[kind] = False

    def is_running(self, kind: TaskKind) -> bool:
        with self._lock:
            return self._flags[kind]

    @property
    def auto_start_running(self) -> bool:
        return self.is_running(TaskKind.AUTO_START)

    @property
    def auto_gather_running(self) -> bool:
        return self.is_running(TaskKind.AUTO_GATHER)

    def __repr__(self) -> str:
        return f"DeviceInstance(index={self.index}, name={self.name!r}, status={self.status.value}, state={self.state!r})"


class InstanceRegistry:
    """Thread-safe index -> DeviceInstance map"""

    def __init__(self):
        self._instances: Dict[int, DeviceInstance] = {}
        self._lock = threading.Lock()

    def get(self, index: int) -> Optional[DeviceInstance]:
        with self._lock:
            return self._instances.get(index)

    def get_or_create(self, index: int, name: str = None) -> DeviceInstance:
        with self._lock:
            instance = self._instances.get(index)
            if instance is None:
                instance = DeviceInstance(index, name)
                self._instances[index] = instance
                logger.info(f"Registered instance {index}")
            return instance

    def remove(self, index: int) -> bool:
        with self._lock:
            return self._instances.pop(index, None) is not None

    def all(self) -> List[DeviceInstance]:
        with self._lock:
            return sorted(self._instances.values(), key=lambda inst: inst.index)
