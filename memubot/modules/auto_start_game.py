"""
Auto Start Game - brings the game to the foreground on one instance
Checks for the running game, clears popups and taps the launcher within a bounded number of attempts
"""

from typing import Callable, Optional

from .task_controller import ControllerState, TaskController, TaskOutcome
from ..core.capture_gateway import CaptureGateway
from ..core.frame_store import ScreenCapture
from ..core.instance_registry import DeviceInstance, TaskKind
from ..utils.logger import get_logger
from ..utils.config import BotConfig
from ..utils.template_matcher import TemplateMatcher

logger = get_logger(__name__)

SCREEN_PURPOSE = "current_screen"


class AutoStartGame(TaskController):
    kind = TaskKind.AUTO_START
    thread_prefix = "GameStarter"

    def __init__(self, instance: DeviceInstance, gateway: CaptureGateway,
                 attempts: int = None, config: Optional[BotConfig] = None,
                 matcher: Optional[TemplateMatcher] = None,
                 on_complete: Optional[Callable[[], None]] = None):
        super().__init__(instance, gateway, config, matcher, on_complete)
        self.settings = self.config.auto_start
        self.attempts = max(1, attempts if attempts is not None else self.settings.attempts)
        self.threshold = self.config.image_recognition.icon_threshold

    def run(self) -> None:
        n = self.attempts
        popups_closed = 0
        self.run_state.phase = ControllerState.ATTEMPTING
        self.publish("Starting game...")

        i = 0
        while i < n and not self.token.cancelled:
            self.run_state.attempt_index = i + 1
            label = f"({i + 1}/{n})"
            logger.info(f"Game start attempt {i + 1}/{n} for instance {self.index}")

            capture = self.capture(SCREEN_PURPOSE)
            if capture is None:
                if self.token.cancelled:
                    break
                self.publish(f"[ERROR] Screenshot failed {label}")
                i += 1
                if self.wait(self.settings.screenshot_retry_delay):
                    break
                continue

            if self.locate(capture, self.settings.running_icon, self.threshold):
                capture.consume()
                self.run_state.outcome = TaskOutcome.DONE
                self.publish("Game already running")
                break

            if self._close_popup(capture):
                popups_closed += 1
                self.publish(f"Closed popup {label}")
                if popups_closed >= self.settings.max_popup_closes:
                    # Past the cap a popup close uses up the attempt
                    logger.warning(f"Instance {self.index}: {popups_closed} popups closed, counting against attempts")
                    i += 1
                if self.wait(self.settings.popup_close_delay):
                    break
                continue

            launcher = self.locate(capture, self.settings.launcher_icon, self.threshold)
            capture.consume()
            if launcher is None:
                self.publish(f"[ERROR] Launcher not found {label}")
            elif self.tap(launcher):
                self.publish(f"Launched game {label}")
            else:
                self.publish(f"[ERROR] Click failed {label}")

            i += 1
            if i < n and self.wait(self.settings.attempt_interval):
                break

        if self.token.cancelled:
            self.run_state.outcome = TaskOutcome.CANCELLED
        else:
            if self.run_state.outcome is None:
                self.run_state.outcome = TaskOutcome.GIVEN_UP
            self._final_check()

        self.run_state.phase = ControllerState.FINISHED

    def _close_popup(self, capture: ScreenCapture) -> bool:
        """Tap the first popup close button found in the capture"""
        for icon in self.settings.popup_close_icons:
            point = self.locate(capture, icon, self.threshold)
            if point is not None and self.tap(point):
                capture.consume()
                logger.info(f"Closed popup ({icon}) for instance {self.index}")
                return True
        return False

    def _final_check(self) -> None:
        """
        Best-effort closing status; the outcome is not changed

        finalize() replaces the status straight after, so "Game running
        successfully" only reaches state listeners.
        """
        capture = self.capture(SCREEN_PURPOSE)
        if capture is None:
            return
        found = self.locate(capture, self.settings.running_icon, self.threshold)
        capture.consume()
        if found:
            self.publish("Game running successfully")

    def finalize(self) -> None:
        self.run_state.phase = ControllerState.FINISHED
        self.publish("Gathering resources" if self.instance.auto_gather_running else "Idle")
