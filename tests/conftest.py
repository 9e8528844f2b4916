"""
Shared fixtures: a scripted device bridge, synthetic screens and a fast config
"""

import threading
from pathlib import Path

import cv2
import numpy as np
import pytest

from memubot.core.capture_gateway import CaptureGateway
from memubot.core.device_bridge import DeviceBridge
from memubot.core.frame_store import FrameStore
from memubot.core.instance_registry import DeviceInstance
from memubot.utils.config import BotConfig
from memubot.utils.template_matcher import TemplateMatcher

SCREEN_SIZE = (400, 652)  # width, height
ICON_SIZE = 40


def noise_image(width, height, seed):
    """Random color image; compresses badly, so screens exceed the size floor"""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, (height, width, 3), dtype=np.uint8)


def make_screen(seed=0, icons=None):
    """
    A synthetic screen with icon patches pasted at fixed offsets

    Args:
        icons: list of (icon_image, (x, y)) pairs
    """
    screen = noise_image(*SCREEN_SIZE, seed=seed)
    for icon, (x, y) in icons or []:
        h, w = icon.shape[:2]
        screen[y:y + h, x:x + w] = icon
    return screen


class FakeBridge(DeviceBridge):
    """
    Scripted DeviceBridge

    ``pull`` writes the current ``screen`` (or ``pull_payloads`` in order
    while any remain) to the requested path.
    """

    def __init__(self, screen=None):
        self.screen = screen if screen is not None else make_screen()
        self.capture_ok = True
        self.tap_ok = True
        self.running = True
        self.pull_payloads = []
        self.capture_calls = 0
        self.pull_calls = 0
        self.taps = []
        self.on_tap = None
        self.lock = threading.Lock()

    def capture(self, instance_index, remote_path, timeout):
        with self.lock:
            self.capture_calls += 1
        return self.capture_ok

    def pull(self, instance_index, remote_path, local_path, timeout):
        with self.lock:
            self.pull_calls += 1
            payload = self.pull_payloads.pop(0) if self.pull_payloads else None
        if payload is None:
            return bool(cv2.imwrite(str(local_path), self.screen))
        Path(local_path).write_bytes(payload)
        return True

    def tap(self, instance_index, x, y, timeout=5.0):
        with self.lock:
            self.taps.append((x, y))
        if self.on_tap is not None:
            self.on_tap(x, y)
        return self.tap_ok

    def is_running(self, instance_index, timeout=5.0):
        return self.running


class FakeOCRReader:
    """Returns canned transcripts per variant name"""

    def __init__(self, transcripts=None, available=True):
        self.transcripts = transcripts or {}
        self.available = available
        self.calls = []

    def read(self, image, variant):
        self.calls.append((variant.name, image.shape))
        return self.transcripts.get(variant.name, "")


class StateRecorder:
    """Collects every status string an instance publishes"""

    def __init__(self, instance):
        self.states = []
        self.lock = threading.Lock()
        self.events = {}
        instance.add_state_listener(self)

    def __call__(self, instance, state):
        with self.lock:
            self.states.append(state)
            for prefix, event in self.events.items():
                if state.startswith(prefix):
                    event.set()

    def event_for(self, prefix):
        event = threading.Event()
        with self.lock:
            self.events[prefix] = event
        return event


@pytest.fixture
def config(tmp_path):
    cfg = BotConfig()
    cfg.capture.screenshot_directory = str(tmp_path / "screenshots")
    cfg.capture.retry_delay = 0
    cfg.bridge.settle_delay = 0
    cfg.image_recognition.template_dirs = [str(tmp_path / "templates")]
    cfg.auto_start.attempt_interval = 0
    cfg.auto_start.screenshot_retry_delay = 0
    cfg.auto_start.popup_close_delay = 0
    cfg.auto_start.start_delay = 0
    cfg.gather.dispatch_delay = 0
    cfg.gather.placeholder_dispatch_time = 0
    cfg.gather.click_retry_delay = 0
    cfg.gather.open_panel_wait = 0
    cfg.gather.wilderness_wait = 0
    return cfg


@pytest.fixture
def template_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    return directory


@pytest.fixture
def icons(template_dir):
    """Distinct noise icons, each saved as a template under its file name"""
    names = ["game_icon.png", "game_launcher.png", "close_x.png", "close_x2.png",
             "close_x3.png", "open_left.png", "wilderness_button.png"]
    result = {}
    for seed, name in enumerate(names, start=100):
        icon = noise_image(ICON_SIZE, ICON_SIZE, seed)
        cv2.imwrite(str(template_dir / name), icon)
        result[name] = icon
    return result


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def gateway(bridge, config):
    return CaptureGateway(bridge, FrameStore(config.capture), config)


@pytest.fixture
def matcher(config):
    return TemplateMatcher(config.image_recognition)


@pytest.fixture
def instance():
    return DeviceInstance(0, "MEmu")


@pytest.fixture
def recorder(instance):
    return StateRecorder(instance)
