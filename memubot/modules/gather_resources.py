"""
Gather Resources - keeps march queues busy on one instance
Opens the march view, reads the queues and dispatches a march per idle queue, then waits and repeats
"""

from typing import Callable, Dict, Optional

from .march_detector import MarchDetector, analyze_gathering_needs, get_available_queues, summarize_queues
from .march_parser import MarchQueueRecord, MarchStatus
from .task_controller import GatherPhase, TaskController, TaskOutcome
from ..core.cancellation import CancellationToken
from ..core.capture_gateway import CaptureGateway
from ..core.instance_registry import DeviceInstance, TaskKind
from ..utils.logger import get_logger
from ..utils.config import BotConfig
from ..utils.module_settings import GatherResourcesSettings, MarchSetting
from ..utils.template_matcher import TemplateMatcher

logger = get_logger(__name__)


class DispatchPolicy:
    """Decides how a march is sent out on an idle queue"""

    def dispatch(self, instance_index: int, queue: MarchQueueRecord,
                 march: Optional[MarchSetting], token: CancellationToken) -> bool:
        """
        Start a march on ``queue``

        Args:
            march: Configured march planned for this queue, if any

        Returns:
            True if the march was started
        """
        raise NotImplementedError


class PlaceholderDispatchPolicy(DispatchPolicy):
    """Takes the time a dispatch would take and reports success"""

    def __init__(self, dispatch_time: float = 2.0):
        self.dispatch_time = dispatch_time

    def dispatch(self, instance_index: int, queue: MarchQueueRecord,
                 march: Optional[MarchSetting], token: CancellationToken) -> bool:
        target = f" ({march})" if march else ""
        logger.info(f"[Instance {instance_index}] Starting march on queue {queue.queue_number}{target} (placeholder)")
        return not token.wait(self.dispatch_time)


class GatherResources(TaskController):
    kind = TaskKind.AUTO_GATHER
    thread_prefix = "ResourceGatherer"

    def __init__(self, instance: DeviceInstance, gateway: CaptureGateway,
                 detector: Optional[MarchDetector] = None,
                 policy: Optional[DispatchPolicy] = None,
                 settings: Optional[GatherResourcesSettings] = None,
                 config: Optional[BotConfig] = None,
                 matcher: Optional[TemplateMatcher] = None,
                 on_complete: Optional[Callable[[], None]] = None):
        super().__init__(instance, gateway, config, matcher, on_complete)
        self.settings = self.config.gather
        self.module_settings = settings
        self.detector = detector or MarchDetector(gateway, self.config)
        self.policy = policy or PlaceholderDispatchPolicy(self.settings.placeholder_dispatch_time)

    def run(self) -> None:
        self.publish("Starting resource gathering...")
        logger.info(f"Starting GatherResources for instance {self.index}")

        while not self.token.cancelled:
            self.run_state.attempt_index += 1
            try:
                delay = self.run_cycle()
            except Exception as e:
                logger.error(f"Error in gather resources loop for instance {self.index}: {e}", exc_info=True)
                self.publish(f"[ERROR] {e}")
                delay = self.settings.error_cooldown

            self.run_state.phase = GatherPhase.WAITING
            if self.wait(delay):
                break

        self.run_state.outcome = TaskOutcome.CANCELLED

    def run_cycle(self) -> float:
        """
        One pass: set up the view, read queues, dispatch or report

        Returns:
            Seconds to wait before the next cycle
        """
        cooldown = self.settings.error_cooldown

        self.run_state.phase = GatherPhase.SETTING_UP
        self.publish("Setting up march view...")
        if not self.setup_march_view():
            if self.token.cancelled:
                return 0
            self.publish(f"[ERROR] Failed to setup march view, retrying in {cooldown:g} seconds...")
            return cooldown

        self.run_state.phase = GatherPhase.READING
        self.publish("Reading march queues...")
        queues = self.detector.read_queues(self.index, self.token)
        if self.token.cancelled:
            return 0
        if not queues:
            self.publish(f"No march queues detected, retrying in {cooldown:g} seconds...")
            return cooldown

        self.run_state.phase = GatherPhase.DECIDING
        for queue in queues:
            logger.info(f"[Instance {self.index}]   {queue}")
        available = get_available_queues(queues)
        planned = self._plan(queues)

        interval = self.settings.check_interval
        if available:
            self.run_state.phase = GatherPhase.DISPATCHING
            self.publish(f"Found {len(available)} available march queues")
            self.dispatch_all(available, planned)
            if not self.token.cancelled:
                self.publish(f"Waiting {interval:g} seconds before next check...")
        else:
            counts = summarize_queues(queues)
            self.publish(f"Summary: {counts[MarchStatus.GATHERING]} gathering, "
                         f"{counts[MarchStatus.UNLOCK]} unlockable, "
                         f"{counts[MarchStatus.CANNOT_USE]} unusable - "
                         f"waiting {interval:g} seconds before next check...")
        return interval

    def _plan(self, queues) -> Dict[int, MarchSetting]:
        """Queue number -> configured march to send there"""
        if self.module_settings is None:
            return {}
        plan = analyze_gathering_needs(queues, self.module_settings)
        return {queue.queue_number: setting for setting, queue in plan.to_start if queue is not None}

    def dispatch_all(self, available, planned: Dict[int, MarchSetting]) -> int:
        started = 0
        for n, queue in enumerate(available):
            if self.token.cancelled:
                break
            self.publish(f"Starting march on Queue {queue.queue_number}")
            if self.policy.dispatch(self.index, queue, planned.get(queue.queue_number), self.token):
                started += 1
                self.publish(f"Successfully started march on Queue {queue.queue_number}")
            elif not self.token.cancelled:
                self.publish(f"[ERROR] Failed to start march on Queue {queue.queue_number}")
            if n < len(available) - 1 and self.wait(self.settings.dispatch_delay):
                break
        return started

    def setup_march_view(self) -> bool:
        """Open the left panel, then the wilderness view"""
        threshold = self.config.image_recognition.landmark_threshold
        if not self.navigate("open_left", self.settings.open_panel_icon, threshold,
                             self.settings.open_panel_wait):
            return False
        if not self.navigate("wilderness", self.settings.wilderness_icon, threshold,
                             self.settings.wilderness_wait):
            return False
        logger.info(f"March view setup complete for instance {self.index}")
        return True

    def navigate(self, purpose: str, template_name: str, threshold: float, settle: float) -> bool:
        """
        Find and tap a navigation button, taking a fresh capture for every try

        Returns:
            True once the tap went through and the view had time to settle
        """
        retries = max(1, self.settings.click_retries)
        for attempt in range(1, retries + 1):
            if self.token.cancelled:
                return False

            capture = self.capture(purpose)
            if capture is not None:
                point = self.locate(capture, template_name, threshold)
                capture.consume()
                if point is not None and self.tap(point):
                    logger.info(f"Clicked {template_name} for instance {self.index}")
                    return not self.wait(settle)
                logger.info(f"Could not find or click {template_name} ({attempt}/{retries}) "
                            f"for instance {self.index}")

            if attempt < retries and self.wait(self.settings.click_retry_delay):
                return False
        return False

    def finalize(self) -> None:
        self.run_state.phase = GatherPhase.STOPPED
        self.publish("Resource gathering stopped")
