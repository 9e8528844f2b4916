"""
Instance Supervisor - starts and stops task controllers for MEmu instances
Activates the enabled modules when an instance comes up and tracks the running controllers
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from .capture_gateway import CaptureGateway
from .device_bridge import DeviceBridge
from .frame_store import FrameStore
from .instance_registry import InstanceRegistry, InstanceStatus, TaskKind
from ..modules.auto_start_game import AutoStartGame
from ..modules.gather_resources import DispatchPolicy, GatherResources
from ..modules.march_detector import MarchDetector
from ..modules.task_controller import TaskController
from ..utils.logger import get_logger
from ..utils.config import BotConfig, get_config
from ..utils.module_settings import ModuleConfigStore
from ..utils.template_matcher import TemplateMatcher

logger = get_logger(__name__)


class InstanceSupervisor:
    """
    Owns the instance registry, the module settings and every controller it starts
    """

    def __init__(self, bridge: DeviceBridge, modules: Optional[ModuleConfigStore] = None,
                 registry: Optional[InstanceRegistry] = None,
                 config: Optional[BotConfig] = None,
                 policy: Optional[DispatchPolicy] = None):
        self.config = config or get_config()
        self.bridge = bridge
        self.modules = modules or ModuleConfigStore()
        self.registry = registry or InstanceRegistry()
        self.frame_store = FrameStore(self.config.capture)
        self.gateway = CaptureGateway(bridge, self.frame_store, self.config)
        self.matcher = TemplateMatcher(self.config.image_recognition)
        self.detector = MarchDetector(self.gateway, self.config)
        self.policy = policy

        self._controllers: Dict[Tuple[int, TaskKind], TaskController] = {}
        self._timers: Dict[int, threading.Timer] = {}
        self.lock = threading.Lock()

        self.frame_store.cleanup_corrupted()

    def on_instance_started(self, index: int) -> None:
        """Activate the modules enabled for an instance that just booted"""
        instance = self.registry.get_or_create(index)
        instance.status = InstanceStatus.RUNNING

        if self.modules.is_enabled(index, TaskKind.AUTO_START):
            delay = self.config.auto_start.start_delay
            logger.info(f"Auto Start Game is enabled for instance {index}, starting in {delay:g}s")
            timer = threading.Timer(delay, self._delayed_auto_start, args=(index,))
            timer.daemon = True
            with self.lock:
                previous = self._timers.pop(index, None)
                self._timers[index] = timer
            if previous is not None:
                previous.cancel()
            timer.start()

        if self.modules.is_enabled(index, TaskKind.AUTO_GATHER):
            logger.info(f"Gather Resources is enabled for instance {index}")
            self.start_gather(index)

    def _delayed_auto_start(self, index: int) -> None:
        with self.lock:
            self._timers.pop(index, None)
        self.start_auto_start(index)

    def start_auto_start(self, index: int, attempts: int = None) -> Optional[AutoStartGame]:
        """Start AutoStartGame; None when one is already running on the instance"""
        instance = self.registry.get_or_create(index)
        if attempts is None:
            attempts = self.modules.get(index, TaskKind.AUTO_START).attempts
        controller = AutoStartGame(
            instance, self.gateway, attempts=attempts, config=self.config, matcher=self.matcher,
            on_complete=lambda: logger.info(f"AutoStartGame completed for instance {index}"),
        )
        return self._start(controller)

    def start_gather(self, index: int) -> Optional[GatherResources]:
        """Start GatherResources; None when one is already running on the instance"""
        instance = self.registry.get_or_create(index)
        controller = GatherResources(
            instance, self.gateway, detector=self.detector, policy=self.policy,
            settings=self.modules.get(index, TaskKind.AUTO_GATHER),
            config=self.config, matcher=self.matcher,
        )
        return self._start(controller)

    def _start(self, controller: TaskController):
        if not controller.start():
            return None
        with self.lock:
            self._controllers[(controller.index, controller.kind)] = controller
        return controller

    def controller(self, index: int, kind: TaskKind) -> Optional[TaskController]:
        with self.lock:
            return self._controllers.get((index, kind))

    def stop_tasks(self, index: int, kind: TaskKind = None, wait: float = None) -> int:
        """
        Stop controllers on an instance (all kinds when ``kind`` is None)

        Args:
            wait: Seconds to wait for each stopped controller to finish

        Returns:
            Number of controllers asked to stop
        """
        with self.lock:
            timer = self._timers.pop(index, None) if kind in (None, TaskKind.AUTO_START) else None
            targets = [
                self._controllers.pop(key)
                for key in list(self._controllers)
                if key[0] == index and (kind is None or key[1] == kind)
            ]
        if timer is not None:
            timer.cancel()

        for controller in targets:
            controller.stop()
        if wait is not None:
            for controller in targets:
                controller.join(wait)
        return len(targets)

    def stop_all(self, wait: float = None) -> None:
        for instance in self.registry.all():
            self.stop_tasks(instance.index, wait=wait)

    def refresh_status(self, indices: List[int] = None) -> Dict[int, InstanceStatus]:
        """Query the bridge for each instance's VM status in parallel"""
        if indices is None:
            indices = [instance.index for instance in self.registry.all()]
        if not indices:
            return {}

        timeout = self.config.bridge.status_timeout

        def check(index: int) -> InstanceStatus:
            try:
                running = self.bridge.is_running(index, timeout)
            except Exception as e:
                logger.error(f"Status check failed for instance {index}: {e}")
                return InstanceStatus.UNKNOWN
            return InstanceStatus.RUNNING if running else InstanceStatus.STOPPED

        with ThreadPoolExecutor(max_workers=min(len(indices), 8)) as executor:
            statuses = dict(zip(indices, executor.map(check, indices)))

        for index, status in statuses.items():
            self.registry.get_or_create(index).status = status
        return statuses
