"""
March Detector Module - reads the march queue panel of an instance
Crops the queue text column, runs competing OCR variants and parses the best transcript
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .march_parser import MarchQueueRecord, MarchStatus, parse_march_queues
from .ocr_scoring import KeywordScorer, TranscriptScorer
from ..core.cancellation import CancellationToken
from ..core.capture_gateway import CaptureGateway
from ..core.frame_store import ScreenCapture
from ..utils.logger import get_logger
from ..utils.config import BotConfig, get_config
from ..utils.exceptions import CaptureError
from ..utils.module_settings import GatherResourcesSettings, MarchSetting
from ..utils.tesseract_ocr import OCRVariant, TesseractOCRReader, get_tesseract_reader

logger = get_logger(__name__)

FULL_SCREEN_PURPOSE = "march_full"
PANEL_PURPOSE = "march_text_panel"


@dataclass(frozen=True)
class OCRAttempt:
    variant: OCRVariant
    transcript: str
    score: int


@dataclass
class GatheringPlan:
    """Result of comparing configured marches with the panel"""
    active: Dict[int, MarchQueueRecord]
    to_start: List[Tuple[MarchSetting, Optional[MarchQueueRecord]]]

    @property
    def waiting(self) -> List[MarchSetting]:
        """Marches that need starting but have no idle queue to use"""
        return [setting for setting, queue in self.to_start if queue is None]


def get_available_queues(queues: List[MarchQueueRecord]) -> List[MarchQueueRecord]:
    """Queues that can take a new march (Idle)"""
    return [q for q in queues if q.status is MarchStatus.IDLE]


def summarize_queues(queues: List[MarchQueueRecord]) -> Dict[MarchStatus, int]:
    """Count of queues per status (every status present, possibly 0)"""
    counts = {status: 0 for status in MarchStatus}
    for queue in queues:
        counts[queue.status] += 1
    return counts


def analyze_gathering_needs(queues: List[MarchQueueRecord],
                            settings: GatherResourcesSettings) -> GatheringPlan:
    """
    Match gathering queues to configured marches by resource type, then
    assign the remaining marches to idle queues in queue order.
    """
    configured = settings.marches[:settings.number_of_marches]
    active: Dict[int, MarchQueueRecord] = {}

    for queue in queues:
        if queue.status is not MarchStatus.GATHERING or queue.resource_info is None:
            continue
        for setting in configured:
            if setting.march_number not in active and setting.resource_type == queue.resource_info:
                active[setting.march_number] = queue
                logger.info(f"March {setting.march_number} is active: {queue.resource_info} "
                            f"(Queue {queue.queue_number})")
                break

    idle = iter(get_available_queues(queues))
    to_start = []
    for setting in configured:
        if setting.march_number in active:
            continue
        queue = next(idle, None)
        if queue is not None:
            logger.info(f"Start {setting} on Queue {queue.queue_number}")
        else:
            logger.info(f"{setting} (waiting for available queue)")
        to_start.append((setting, queue))

    return GatheringPlan(active=active, to_start=to_start)


class MarchDetector:
    """
    Panel OCR classifier for march queues
    """

    def __init__(self, gateway: CaptureGateway, config: Optional[BotConfig] = None,
                 reader: Optional[TesseractOCRReader] = None,
                 scorer: Optional[TranscriptScorer] = None):
        """
        Args:
            gateway: Screenshot source
            config: Bot configuration (shared config when None)
            reader: OCR engine wrapper (shared Tesseract reader when None)
            scorer: Transcript ranking heuristic (KeywordScorer when None)
        """
        self.gateway = gateway
        self.config = config or get_config()
        self.reader = reader or get_tesseract_reader(self.config.ocr)
        self.scorer = scorer or KeywordScorer()
        self.variants = [OCRVariant.from_dict(v) for v in self.config.ocr.variants]

    def read_queues(self, instance_index: int,
                    token: Optional[CancellationToken] = None) -> List[MarchQueueRecord]:
        """
        One classification pass over the march panel

        Returns:
            Records sorted by queue number; [] when the capture, the crop or
            the OCR engine is unavailable, or nothing parsed
        """
        logger.info(f"[Instance {instance_index}] Reading march queues...")

        if not self.reader.available:
            logger.warning(f"[Instance {instance_index}] OCR engine unavailable, no queues read")
            return []

        try:
            capture = self.gateway.capture(instance_index, FULL_SCREEN_PURPOSE, token)
        except CaptureError as e:
            logger.error(f"[Instance {instance_index}] Failed to take full screenshot: {e}")
            return []

        panel = self.extract_panel(capture, instance_index)
        capture.consume()
        if panel is None:
            return []

        best = self.best_transcript(panel, token)
        if best is None or not best.transcript:
            logger.warning(f"[Instance {instance_index}] No OCR transcript scored above zero")
            return []

        logger.debug(f"[Instance {instance_index}] Panel transcript ({best.variant.name}):\n{best.transcript}")
        queues = parse_march_queues(best.transcript)
        for queue in queues:
            logger.info(f"[Instance {instance_index}] {queue}")
        return queues

    def panel_rect(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Crop rectangle for an image of the given size

        The configured region is scaled from the reference resolution and
        clamped to the image.
        """
        x, y, w, h = self.config.ocr.panel_region
        ref_w, ref_h = self.config.ocr.reference_resolution
        if ref_w and ref_h and (width, height) != (ref_w, ref_h):
            sx, sy = width / ref_w, height / ref_h
            x, y, w, h = round(x * sx), round(y * sy), round(w * sx), round(h * sy)

        x = min(max(0, x), width)
        y = min(max(0, y), height)
        w = max(0, min(w, width - x))
        h = max(0, min(h, height - y))
        return x, y, w, h

    def extract_panel(self, capture: ScreenCapture, instance_index: int) -> Optional[np.ndarray]:
        """Crop the queue text column and save it next to the screenshot"""
        if capture.is_stale:
            logger.warning(f"[Instance {instance_index}] Refusing stale capture: {capture}")
            return None

        screenshot_path = capture.path
        screen = cv2.imread(str(screenshot_path), cv2.IMREAD_COLOR)
        if screen is None or screen.size == 0:
            logger.error(f"[Instance {instance_index}] Failed to load screenshot: {screenshot_path}")
            return None

        x, y, w, h = self.panel_rect(screen.shape[1], screen.shape[0])
        if w == 0 or h == 0:
            logger.error(f"[Instance {instance_index}] Panel region lies outside the "
                         f"{screen.shape[1]}x{screen.shape[0]} screenshot")
            return None

        panel = screen[y:y + h, x:x + w].copy()
        panel_path = self.gateway.frame_store.path_for(instance_index, PANEL_PURPOSE)
        if cv2.imwrite(str(panel_path), panel):
            logger.debug(f"Text panel extracted: {panel_path} ({w}x{h})")
        else:
            logger.warning(f"Could not save text panel to {panel_path}")
        return panel

    def best_transcript(self, panel: np.ndarray,
                        token: Optional[CancellationToken] = None) -> Optional[OCRAttempt]:
        """
        Run every variant and keep the highest score (first one on ties)

        Returns:
            None when no transcript scores above zero
        """
        best: Optional[OCRAttempt] = None
        for variant in self.variants:
            if token is not None and token.cancelled:
                break
            transcript = self.reader.read(panel, variant)
            attempt = OCRAttempt(variant, transcript, self.scorer.score(transcript))
            logger.debug(f"OCR variant {variant.name}: score {attempt.score} - "
                         f"'{transcript.replace(chr(10), ' | ')}'")
            if attempt.score > (best.score if best is not None else 0):
                best = attempt

        if best is None:
            logger.info("No OCR variant scored above zero")
        else:
            logger.info(f"Best OCR result: {best.variant.name} (score: {best.score})")
        return best
