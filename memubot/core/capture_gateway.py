"""
Capture Gateway - obtains a fresh, validated screenshot from an instance
"""

from pathlib import Path
from typing import Optional

import cv2
from PIL import Image

from .cancellation import CancellationToken
from .device_bridge import DeviceBridge
from .frame_store import FrameStore, ScreenCapture
from ..utils.logger import get_logger
from ..utils.config import BotConfig, get_config
from ..utils.exceptions import CaptureError

logger = get_logger(__name__)

_DECODE_BACKEND = 'opencv' if hasattr(cv2, 'imread') else 'pillow'


def decode_ok(path: Path) -> bool:
    """Whether the file decodes as an image with the available backend"""
    try:
        if _DECODE_BACKEND == 'opencv':
            image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
            return image is not None and image.size > 0
        with Image.open(path) as image:
            image.verify()
        return True
    except Exception as e:
        logger.debug(f"Decode check failed for {path}: {e}")
        return False


class CaptureGateway:
    """
    Wraps the device bridge: capture on device, pull locally, validate, retry.
    """

    def __init__(self, bridge: DeviceBridge, frame_store: Optional[FrameStore] = None,
                 config: Optional[BotConfig] = None):
        self.bridge = bridge
        self.config = config or get_config()
        self.frame_store = frame_store or FrameStore(self.config.capture)

    def capture(self, instance_index: int, purpose: str,
                token: Optional[CancellationToken] = None) -> ScreenCapture:
        """
        Take a screenshot and return it once it passes validation.

        Every attempt deletes the previous artifact first so a cached file
        can never be mistaken for a fresh one.

        Raises:
            CaptureError: all attempts failed, or the token was cancelled
        """
        token = token or CancellationToken()
        capture_config = self.config.capture
        bridge_config = self.config.bridge
        path = self.frame_store.path_for(instance_index, purpose)
        self.frame_store.ensure_directory()

        attempts = max(1, capture_config.max_attempts)
        for attempt in range(1, attempts + 1):
            if token.cancelled:
                raise CaptureError(f"Capture cancelled for instance {instance_index}",
                                   instance_index, purpose, attempt - 1)

            self.frame_store.invalidate(instance_index, purpose)

            if self._capture_once(instance_index, path, token, bridge_config):
                size = path.stat().st_size
                logger.info(f"Screenshot saved: {path} ({size} bytes)")
                return ScreenCapture(path=path, instance_index=instance_index,
                                     purpose=purpose, size_bytes=size)

            logger.warning(f"Screenshot attempt {attempt}/{attempts} failed for instance "
                           f"{instance_index} ({purpose})")
            if attempt < attempts and token.wait(capture_config.retry_delay):
                raise CaptureError(f"Capture cancelled for instance {instance_index}",
                                   instance_index, purpose, attempt)

        self.frame_store.invalidate(instance_index, purpose)
        raise CaptureError(f"Screenshot failed after {attempts} attempts for instance {instance_index}",
                           instance_index, purpose, attempts)

    def _capture_once(self, instance_index: int, path: Path, token: CancellationToken,
                      bridge_config) -> bool:
        remote = bridge_config.remote_screenshot_path

        if not self.bridge.capture(instance_index, remote, token.timeout_for(bridge_config.capture_timeout)):
            return False

        if token.wait(bridge_config.settle_delay):
            return False

        if not self.bridge.pull(instance_index, remote, str(path), token.timeout_for(bridge_config.pull_timeout)):
            return False

        return self.validate(path)

    def validate(self, path: Path) -> bool:
        """Reject missing, truncated or undecodable artifacts"""
        capture_config = self.config.capture
        if not path.exists():
            logger.warning(f"Screenshot missing after pull: {path}")
            return False

        size = path.stat().st_size
        if size <= capture_config.min_bytes:
            logger.warning(f"Screenshot too small ({size} bytes <= {capture_config.min_bytes}): {path}")
            return False

        if capture_config.verify_decode and not decode_ok(path):
            logger.warning(f"Screenshot failed to decode: {path}")
            return False

        return True

    def try_capture(self, instance_index: int, purpose: str,
                    token: Optional[CancellationToken] = None) -> Optional[ScreenCapture]:
        """capture() that returns None instead of raising"""
        try:
            return self.capture(instance_index, purpose, token)
        except CaptureError as e:
            logger.error(str(e))
            return None
