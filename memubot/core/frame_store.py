"""
Frame Store - on-disk screenshot artifacts per device instance
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..utils.logger import get_logger
from ..utils.config import CaptureConfig

logger = get_logger(__name__)


@dataclass
class ScreenCapture:
    """A screenshot file for one instance and purpose.

    A capture is good for a single decision. Call ``consume()`` once it
    has driven one, then take a fresh capture before the next decision.
    """
    path: Path
    instance_index: int
    purpose: str
    size_bytes: int = 0
    captured_at: float = field(default_factory=time.time)
    consumed: bool = False

    def consume(self) -> "ScreenCapture":
        self.consumed = True
        return self

    @property
    def is_stale(self) -> bool:
        return self.consumed or not self.path.exists()

    def __str__(self) -> str:
        return str(self.path)


class FrameStore:
    """
    Names, provisions and invalidates screenshot artifacts.

    Paths are deterministic: ``<dir>/<purpose>_<index>.png``. Nothing may
    assume a file survives the next capture of the same purpose.
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self.directory = Path(self.config.screenshot_directory)

    def ensure_directory(self) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def path_for(self, instance_index: int, purpose: str) -> Path:
        return self.directory / f"{purpose}_{instance_index}.png"

    def invalidate(self, instance_index: int, purpose: str) -> bool:
        """Delete the artifact for (instance, purpose); True if one was removed"""
        path = self.path_for(instance_index, purpose)
        try:
            path.unlink()
            logger.debug(f"Removed stale artifact {path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not remove stale artifact {path}: {e}")
            return False

    def cleanup_corrupted(self) -> int:
        """Remove truncated .png artifacts left over from earlier runs"""
        if not self.directory.exists():
            return 0

        removed = 0
        for path in self.directory.glob("*.png"):
            try:
                if path.stat().st_size < self.config.corrupted_bytes:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning(f"Error during cleanup of {path}: {e}")

        if removed:
            logger.info(f"Cleaned up {removed} corrupted screenshot(s) in {self.directory}")
        return removed
