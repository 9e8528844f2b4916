"""
Template Matcher - Finds game UI elements (buttons, icons) in screenshots using template matching
Both images are compared in grayscale with normalized cross-correlation
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import cv2
import numpy as np

from ..utils.logger import get_logger
from ..utils.config import ImageRecognitionConfig, get_config

logger = get_logger(__name__)

# OpenCV template matching constants (as integers if not available as attributes)
TM_CONSTANTS = {
    'TM_SQDIFF': 0,
    'TM_SQDIFF_NORMED': 1,
    'TM_CCORR': 2,
    'TM_CCORR_NORMED': 3,
    'TM_CCOEFF': 4,
    'TM_CCOEFF_NORMED': 5
}


@dataclass(frozen=True)
class TemplateMatch:
    """Best match of a template in a capture"""
    template_name: str
    confidence: float
    threshold: float
    # Top-left offset of the best match and template (width, height)
    offset: Tuple[int, int]
    size: Tuple[int, int]

    @property
    def found(self) -> bool:
        return self.confidence >= self.threshold

    @property
    def location(self) -> Optional[Tuple[int, int]]:
        """Top-left offset, present only when the match clears the threshold"""
        return self.offset if self.found else None

    @property
    def center(self) -> Optional[Tuple[int, int]]:
        """Tap point for the match, present only when the match clears the threshold"""
        if not self.found:
            return None
        return (self.offset[0] + self.size[0] // 2, self.offset[1] + self.size[1] // 2)


class TemplateMatcher:
    """
    Template matching utility for finding game UI elements in screenshots
    """
    # Class-level flag to track if OpenCV warning has been logged (only log once globally)
    _opencv_warning_logged_class = False

    def __init__(self, config: Optional[ImageRecognitionConfig] = None, template_dirs: List[str] = None):
        """
        Initialize template matcher

        Args:
            config: Image recognition settings (shared config when None)
            template_dirs: Template search order; first existing file wins
        """
        self.config = config or get_config().image_recognition
        self.template_dirs = [Path(d) for d in (template_dirs or self.config.template_dirs)]
        self.icon_threshold = self.config.icon_threshold
        self.landmark_threshold = self.config.landmark_threshold

        method_name = self.config.template_matching_method.split('.')[-1]
        if hasattr(cv2, method_name):
            self.matching_method = getattr(cv2, method_name)
        elif method_name in TM_CONSTANTS:
            self.matching_method = TM_CONSTANTS[method_name]
        else:
            self.matching_method = TM_CONSTANTS['TM_CCOEFF_NORMED']
            logger.warning(f"Unknown template matching method: {method_name}, using TM_CCOEFF_NORMED")

        # Cache for loaded grayscale templates
        self.template_cache: Dict[str, np.ndarray] = {}
        self._cache_lock = threading.Lock()

        self._opencv_available = (
            hasattr(cv2, 'matchTemplate') and
            hasattr(cv2, 'minMaxLoc') and
            hasattr(cv2, 'imread')
        )

        if not self._opencv_available and not TemplateMatcher._opencv_warning_logged_class:
            logger.error(
                "WARNING: OpenCV installation appears corrupted - template matching will not work!\n"
                "Required functions missing: matchTemplate, minMaxLoc, or imread\n"
                "Please reinstall OpenCV with:\n"
                "  pip install --force-reinstall --no-cache-dir opencv-python"
            )
            TemplateMatcher._opencv_warning_logged_class = True

        logger.debug(f"Template matcher initialized with search order: {[str(d) for d in self.template_dirs]}")

    @property
    def available(self) -> bool:
        return self._opencv_available

    def resolve_template(self, template_name: str) -> Optional[Path]:
        """Find a template file: assets directory, then working directory, then images/"""
        for directory in self.template_dirs:
            candidate = directory / template_name
            if candidate.is_file():
                return candidate
        return None

    def load_template(self, template_name: str) -> Optional[np.ndarray]:
        """
        Load a template image from disk in grayscale

        Args:
            template_name: Name of the template file (e.g., 'game_icon.png')

        Returns:
            Template image as numpy array, or None if not found
        """
        with self._cache_lock:
            if template_name in self.template_cache:
                return self.template_cache[template_name]

        template_path = self.resolve_template(template_name)
        if template_path is None:
            logger.warning(f"Template not found: {template_name}")
            return None

        template = cv2.imread(str(template_path), cv2.IMREAD_GRAYSCALE)
        if template is None or template.size == 0:
            logger.error(f"Failed to load template: {template_path}")
            return None

        with self._cache_lock:
            self.template_cache[template_name] = template
        logger.debug(f"Loaded template: {template_path} ({template.shape[1]}x{template.shape[0]})")
        return template

    def match(self, screenshot: Union[str, Path, np.ndarray], template_name: str,
              threshold: float = None) -> Optional[TemplateMatch]:
        """
        Compute the best match of a template in a screenshot

        Args:
            screenshot: Path to the capture, or an already-loaded image
            template_name: Name of the template to find
            threshold: Minimum confidence (icon threshold when None)

        Returns:
            TemplateMatch with the global maximum, or None when no
            comparison could be made (missing template/capture, backend down)
        """
        if not self._opencv_available:
            return None

        threshold = self.icon_threshold if threshold is None else threshold

        template = self.load_template(template_name)
        if template is None:
            return None

        screen = self._load_screen(screenshot)
        if screen is None:
            return None

        if template.shape[0] > screen.shape[0] or template.shape[1] > screen.shape[1]:
            logger.warning(f"Template {template_name} ({template.shape[1]}x{template.shape[0]}) is larger "
                           f"than the screen ({screen.shape[1]}x{screen.shape[0]})")
            return None

        try:
            result = cv2.matchTemplate(screen, template, self.matching_method)
            min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(result)
        except cv2.error as e:
            logger.error(f"Error in template matching for {template_name}: {e}")
            return None

        # For TM_SQDIFF variants lower is better
        if self.matching_method in (TM_CONSTANTS['TM_SQDIFF'], TM_CONSTANTS['TM_SQDIFF_NORMED']):
            confidence, loc = 1.0 - min_val, min_loc
        else:
            confidence, loc = max_val, max_loc

        if not np.isfinite(confidence):
            # Flat template or flat screen region
            confidence = 0.0
        confidence = float(min(1.0, max(0.0, confidence)))

        match = TemplateMatch(
            template_name=template_name,
            confidence=confidence,
            threshold=threshold,
            offset=(int(loc[0]), int(loc[1])),
            size=(int(template.shape[1]), int(template.shape[0])),
        )
        logger.info(f"Template matching confidence: {confidence:.3f} (threshold: {threshold}) for {template_name}")
        return match

    def locate(self, screenshot: Union[str, Path, np.ndarray], template_name: str,
               threshold: float = None) -> Optional[Tuple[int, int]]:
        """
        Find a template and return the point to tap

        Returns:
            (center_x, center_y) when confidence >= threshold, None otherwise.
            Absence is an ordinary outcome and never raises.
        """
        match = self.match(screenshot, template_name, threshold)
        if match is None or not match.found:
            return None
        logger.info(f"Found template at {match.center} for {template_name}")
        return match.center

    def locate_with_retry(self, screenshot_path: Union[str, Path], template_name: str,
                          threshold: float = None, instance_index: int = None,
                          attempts: int = 1) -> Optional[Tuple[int, int]]:
        """
        locate() against the same on-disk capture, tagged with the instance for diagnostics.

        This never takes a new capture; re-reading only helps when the file
        was still being written. Callers wanting a fresh frame must capture
        again themselves.
        """
        tag = f"[Instance {instance_index}] " if instance_index is not None else ""
        attempts = max(1, attempts)
        for attempt in range(1, attempts + 1):
            point = self.locate(screenshot_path, template_name, threshold)
            if point is not None:
                return point
            if attempt < attempts:
                logger.debug(f"{tag}{template_name} not found, re-reading {screenshot_path} ({attempt}/{attempts})")
        logger.info(f"{tag}Template not found - confidence too low for {template_name}")
        return None

    def _load_screen(self, screenshot: Union[str, Path, np.ndarray]) -> Optional[np.ndarray]:
        if isinstance(screenshot, np.ndarray):
            if screenshot.ndim == 3:
                return cv2.cvtColor(screenshot, cv2.COLOR_BGR2GRAY)
            return screenshot

        screen = cv2.imread(str(screenshot), cv2.IMREAD_GRAYSCALE)
        if screen is None or screen.size == 0:
            logger.error(f"Failed to load screenshot: {screenshot}")
            return None
        return screen

    def clear_cache(self) -> None:
        with self._cache_lock:
            self.template_cache.clear()
