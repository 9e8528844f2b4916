"""
Task Controller - shared shape of the per-instance automation loops
Each run owns a worker thread, a cancellation token and the instance run-flag for its kind
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from ..core.cancellation import CancellationToken
from ..core.capture_gateway import CaptureGateway
from ..core.frame_store import ScreenCapture
from ..core.instance_registry import DeviceInstance, TaskKind
from ..utils.logger import get_logger
from ..utils.config import BotConfig
from ..utils.template_matcher import TemplateMatcher

logger = get_logger(__name__)


class ControllerState(Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    FINISHED = "finished"


class GatherPhase(Enum):
    SETTING_UP = "setting_up"
    READING = "reading"
    DECIDING = "deciding"
    DISPATCHING = "dispatching"
    WAITING = "waiting"
    STOPPED = "stopped"


class TaskOutcome(Enum):
    DONE = "done"
    GIVEN_UP = "given_up"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ControllerRunState:
    attempt_index: int = 0
    phase: Union[ControllerState, GatherPhase] = ControllerState.IDLE
    outcome: Optional[TaskOutcome] = None


class TaskController:
    """
    Base class for AutoStartGame and GatherResources

    Subclasses set ``kind`` and implement ``run()``. The run-flag is taken
    in ``start()`` before any side effect and released in a finalizer after
    the last one.
    """
    kind: TaskKind = None
    thread_prefix = "Task"

    def __init__(self, instance: DeviceInstance, gateway: CaptureGateway,
                 config: Optional[BotConfig] = None,
                 matcher: Optional[TemplateMatcher] = None,
                 on_complete: Optional[Callable[[], None]] = None):
        self.instance = instance
        self.gateway = gateway
        self.bridge = gateway.bridge
        self.config = config or gateway.config
        self.matcher = matcher or TemplateMatcher(self.config.image_recognition)
        self.on_complete = on_complete
        self.token = CancellationToken()
        self.run_state = ControllerRunState()
        self._thread: Optional[threading.Thread] = None

    @property
    def index(self) -> int:
        return self.instance.index

    @property
    def thread_name(self) -> str:
        return f"{self.thread_prefix}-{self.index}"

    def start(self, deadline: Optional[float] = None) -> bool:
        """
        Start the loop on a daemon thread

        Args:
            deadline: Optional time.monotonic() value that ends the run

        Returns:
            False, without spawning anything, when a run of the same kind
            is already active on the instance
        """
        if not self.instance.try_acquire(self.kind):
            logger.info(f"{self.kind.value} already running for instance {self.index}")
            return False

        self.token = CancellationToken(deadline)
        self.run_state = ControllerRunState()
        self._thread = threading.Thread(target=self._run_guarded, name=self.thread_name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError:
            self.instance.release(self.kind)
            raise
        logger.info(f"Started {self.kind.value} for instance {self.index}")
        return True

    def stop(self) -> None:
        self.token.cancel()
        logger.info(f"Stop requested for {self.kind.value} on instance {self.index}")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker; True when it has finished"""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_guarded(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.error(f"Error in {self.kind.value} loop for instance {self.index}: {e}", exc_info=True)
            self.run_state.outcome = TaskOutcome.FAILED
            self.publish(f"[ERROR] {e}")
        finally:
            self.instance.release(self.kind)
            self.finalize()
            logger.info(f"{self.kind.value} loop completed for instance {self.index} "
                        f"({self.run_state.outcome.value if self.run_state.outcome else 'no outcome'})")
            if self.on_complete is not None:
                try:
                    self.on_complete()
                except Exception as e:
                    logger.error(f"on_complete callback failed for instance {self.index}: {e}", exc_info=True)

    def run(self) -> None:
        raise NotImplementedError

    def finalize(self) -> None:
        """Set the follow-up status once the run-flag is clear"""

    # Helpers shared by the loops

    def publish(self, state: str) -> None:
        self.instance.set_state(state)
        logger.info(f"[Instance {self.index}] {state}")

    def wait(self, seconds: float) -> bool:
        """Sleep unless stopped; True means the run was cancelled"""
        return self.token.wait(seconds)

    def capture(self, purpose: str) -> Optional[ScreenCapture]:
        return self.gateway.try_capture(self.index, purpose, self.token)

    def locate(self, capture: ScreenCapture, template_name: str,
               threshold: float = None) -> Optional[Tuple[int, int]]:
        """Match a template in a capture; a stale capture matches nothing"""
        if capture.is_stale:
            logger.warning(f"Instance {self.index}: refusing stale {capture.purpose} capture for {template_name}")
            return None
        return self.matcher.locate_with_retry(capture.path, template_name, threshold,
                                              instance_index=self.index)

    def tap(self, point: Tuple[int, int]) -> bool:
        timeout = self.token.timeout_for(self.config.bridge.tap_timeout)
        return self.bridge.tap(self.index, point[0], point[1], timeout)
