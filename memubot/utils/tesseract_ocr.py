"""
Tesseract OCR reader - runs the Tesseract engine through pytesseract
Each call uses one OCR variant (page segmentation, engine mode, whitelist, preprocessing)
"""

import os
import platform
import shutil
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import cv2
import numpy as np
import pytesseract

from ..utils.logger import get_logger
from ..utils.config import OCRConfig

logger = get_logger(__name__)

PREPROCESS_MODES = ('none', 'otsu')


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def _threshold_otsu(gray: np.ndarray) -> np.ndarray:
    """Binarize with OTSU's automatically chosen threshold"""
    _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return thresh


@dataclass(frozen=True)
class OCRVariant:
    """One competing OCR configuration"""
    name: str
    psm: int = 6
    oem: int = 1
    whitelist: Optional[str] = None
    preprocess: str = 'none'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRVariant":
        preprocess = data.get('preprocess', 'none')
        if preprocess not in PREPROCESS_MODES:
            logger.warning(f"Unknown OCR preprocess '{preprocess}' for variant {data.get('name')}, using 'none'")
            preprocess = 'none'
        return cls(
            name=data.get('name') or f"psm{data.get('psm', 6)}_oem{data.get('oem', 1)}",
            psm=int(data.get('psm', 6)),
            oem=int(data.get('oem', 1)),
            whitelist=data.get('whitelist'),
            preprocess=preprocess,
        )

    def tesseract_config(self) -> str:
        """Command-line options for pytesseract"""
        config = f"--oem {self.oem} --psm {self.psm}"
        if self.whitelist:
            # Quoted so the trailing space in the whitelist survives argument splitting
            config += f' -c tessedit_char_whitelist="{self.whitelist}"'
        return config


class TesseractOCRReader:
    """
    Tesseract-based OCR reader

    Engine availability is checked once, on first use. Without an engine
    every read returns an empty transcript.
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        """
        Initialize Tesseract OCR reader

        Args:
            config: OCR settings; tesseract_cmd is auto-detected when unset
        """
        self.config = config or OCRConfig()
        self.lang = self.config.language
        self._available: Optional[bool] = None
        self._lock = threading.Lock()

    def _auto_detect_tesseract(self) -> Optional[str]:
        """Auto-detect Tesseract installation path"""
        found = shutil.which('tesseract')
        if found:
            return found

        system = platform.system()
        if system == 'Windows':
            common_paths = [
                r"C:\Program Files\Tesseract-OCR\tesseract.exe",
                r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
                r"C:\Users\{}\AppData\Local\Programs\Tesseract-OCR\tesseract.exe".format(os.getenv('USERNAME', '')),
            ]
        elif system == 'Darwin':  # macOS
            common_paths = ['/usr/local/bin/tesseract', '/opt/homebrew/bin/tesseract']
        else:  # Linux
            common_paths = ['/usr/bin/tesseract', '/usr/local/bin/tesseract']

        for path in common_paths:
            if os.path.exists(path):
                return path
        return None

    @property
    def available(self) -> bool:
        """Whether a working Tesseract executable was found (checked once)"""
        with self._lock:
            if self._available is None:
                self._available = self._check_engine()
            return self._available

    def _check_engine(self) -> bool:
        if not self.config.enabled:
            logger.info("OCR disabled in configuration")
            return False

        tesseract_cmd = self.config.tesseract_cmd or self._auto_detect_tesseract()
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError:
            logger.error("Tesseract-OCR executable not found. Install Tesseract-OCR or set ocr.tesseract_cmd "
                         "(MEMUBOT_TESSERACT_CMD); queue detection is disabled")
            return False
        except Exception as e:
            logger.error(f"Failed to verify Tesseract installation: {e}")
            return False

        logger.info(f"Tesseract OCR reader initialized: {version}")
        return True

    def preprocess(self, image: np.ndarray, mode: str) -> np.ndarray:
        gray = _to_gray(image)
        if mode == 'otsu':
            return _threshold_otsu(gray)
        return gray

    def read(self, image: np.ndarray, variant: OCRVariant) -> str:
        """
        Transcribe an image with one variant

        Returns:
            Raw transcript, or "" when the engine is missing or the run failed
        """
        if not self.available:
            return ""

        try:
            prepared = self.preprocess(image, variant.preprocess)
            text = pytesseract.image_to_string(
                prepared,
                lang=self.lang,
                config=variant.tesseract_config(),
                timeout=self.config.timeout,
            )
        except (RuntimeError, OSError, cv2.error) as e:
            # TesseractError and the pytesseract timeout are both RuntimeErrors
            logger.warning(f"OCR variant {variant.name} failed: {e}")
            return ""

        return text.strip()


# Global Tesseract reader instance
_tesseract_reader: Optional[TesseractOCRReader] = None
_reader_lock = threading.Lock()


def get_tesseract_reader(config: Optional[OCRConfig] = None) -> TesseractOCRReader:
    """
    Get or create the shared Tesseract OCR reader

    Args:
        config: OCR settings used when the reader is first created

    Returns:
        TesseractOCRReader instance
    """
    global _tesseract_reader
    with _reader_lock:
        if _tesseract_reader is None:
            _tesseract_reader = TesseractOCRReader(config)
        return _tesseract_reader
