"""
March queue parser - turns a panel transcript into structured queue records
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class MarchStatus(Enum):
    IDLE = "Idle"
    UNLOCK = "Unlock"
    CANNOT_USE = "Cannot Use"
    GATHERING = "Gathering"


@dataclass(frozen=True)
class MarchQueueRecord:
    """Status of one march queue as read off the panel"""
    queue_number: int
    status: MarchStatus
    remaining_time: Optional[str] = None
    resource_info: Optional[str] = None

    def __str__(self) -> str:
        text = f"March Queue {self.queue_number}: {self.status.value}"
        if self.remaining_time:
            text += f" ({self.remaining_time})"
        if self.resource_info:
            text += f" - {self.resource_info}"
        return text


HEADER_PATTERN = re.compile(r"march\s*queue\s*(\d+)?")
STATUS_TIMER_PATTERN = re.compile(r"\d{1,2}[:.]\d{2}(?:[:.]\d{2})?")
LOOSE_TIMER_PATTERN = re.compile(r"\d{1,2}:\d{2}")

GATHERING_WORDS = ("gathering", "lv", "mill", "lumber", "quarry", "mine")

# Resource-site label -> resource type
RESOURCE_SITES = (
    ("mill", "Food"),
    ("lumberyard", "Wood"),
    ("lumber", "Wood"),
    ("quarry", "Stone"),
    ("mine", "Iron"),
    ("iron", "Iron"),
)


def clean_lines(transcript: str) -> List[str]:
    """Trimmed, non-empty lines without known garbage or bare panel titles"""
    lines = []
    for line in transcript.splitlines():
        cleaned = line.strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if "ss ee ee" in lowered or lowered == "march queue":
            continue
        lines.append(cleaned)
    return lines


def extract_resource(text: str) -> Optional[str]:
    """Resource type named by a gathering line, None if no site is recognizable"""
    lowered = text.lower()
    for site, resource in RESOURCE_SITES:
        if site in lowered:
            return resource
    return None


def _has_gathering_words(lowered: str) -> bool:
    return any(word in lowered for word in GATHERING_WORDS)


def classify_status(line: str) -> MarchStatus:
    """Status named by the line following a queue header (Idle when unclear)"""
    lowered = line.lower()
    if "idle" in lowered:
        return MarchStatus.IDLE
    if "unlock" in lowered:
        return MarchStatus.UNLOCK
    if "cannot" in lowered or "use" in lowered:
        return MarchStatus.CANNOT_USE
    if _has_gathering_words(lowered) or STATUS_TIMER_PATTERN.search(lowered):
        return MarchStatus.GATHERING
    return MarchStatus.IDLE


def _gathering_record(queue_number: int, line: str) -> MarchQueueRecord:
    timer = STATUS_TIMER_PATTERN.search(line)
    return MarchQueueRecord(
        queue_number=queue_number,
        status=MarchStatus.GATHERING,
        remaining_time=timer.group(0) if timer else None,
        resource_info=extract_resource(line),
    )


def parse_march_queues(transcript: str) -> List[MarchQueueRecord]:
    """
    Parse a panel transcript into queue records sorted by queue number

    A "March Queue N" header takes its status from the next line, which is
    consumed. A gathering line with no header is an implicit record for the
    next expected queue, since the panel does not repeat the header for
    active marches. When nothing parses, every line is scanned for a bare
    status keyword instead (see parse_by_lines).
    """
    lines = clean_lines(transcript or "")
    records: Dict[int, MarchQueueRecord] = {}
    expected = 1

    i = 0
    while i < len(lines):
        lowered = lines[i].lower()
        header = HEADER_PATTERN.search(lowered)

        if header is None:
            if _has_gathering_words(lowered):
                if expected not in records:
                    records[expected] = _gathering_record(expected, lines[i])
                    logger.debug(f"Implicit gathering record: {records[expected]}")
                expected += 1
            i += 1
            continue

        queue_number = int(header.group(1)) if header.group(1) else 0
        if queue_number < 1:
            queue_number = expected

        status = MarchStatus.IDLE
        record = None
        if i + 1 < len(lines) and not HEADER_PATTERN.search(lines[i + 1].lower()):
            status_line = lines[i + 1]
            status = classify_status(status_line)
            if status is MarchStatus.GATHERING:
                record = _gathering_record(queue_number, status_line)
            # Consumed as this header's status
            i += 1

        if queue_number not in records:
            records[queue_number] = record or MarchQueueRecord(queue_number, status)

        expected = max(expected, queue_number + 1)
        i += 1

    if not records:
        return parse_by_lines(lines)

    return sorted(records.values(), key=lambda r: r.queue_number)


def parse_by_lines(lines: List[str]) -> List[MarchQueueRecord]:
    """Looser pass: each line holding a status keyword is the next queue"""
    if lines:
        logger.debug("Trying line-by-line queue parsing")

    records = []
    for line in lines:
        lowered = line.lower()
        if HEADER_PATTERN.search(lowered):
            continue

        if "idle" in lowered:
            status = MarchStatus.IDLE
        elif "unlock" in lowered:
            status = MarchStatus.UNLOCK
        elif "cannot" in lowered or "use" in lowered:
            status = MarchStatus.CANNOT_USE
        elif "gathering" in lowered or LOOSE_TIMER_PATTERN.search(lowered):
            status = MarchStatus.GATHERING
        else:
            continue

        records.append(MarchQueueRecord(len(records) + 1, status))

    return records
