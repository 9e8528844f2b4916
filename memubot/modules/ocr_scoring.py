"""
OCR transcript scoring - ranks competing transcripts of the march queue panel
Points come from expected vocabulary and structure; garbage markers cost points
"""

import re
from dataclasses import dataclass
from typing import Tuple

HEADER_PATTERN = re.compile(r"march\s*queue\s*\d*")
NUMBERED_HEADER_PATTERN = re.compile(r"march queue [1-6]")
TIMER_PATTERN = re.compile(r"\d{1,2}:\d{2}(:\d{2})?")

STATUS_KEYWORDS = ("idle", "unlock", "cannot use")
RESOURCE_SITE_WORDS = ("gathering", "mill", "lumberyard", "lumber", "quarry", "mine")


@dataclass(frozen=True)
class ScoringWeights:
    """Point values for KeywordScorer; all tunable"""
    header: int = 20
    idle: int = 15
    unlock: int = 15
    cannot_use: int = 15
    numbered_header: int = 10
    resource_site: int = 5
    clean_line: int = 5
    timer_line: int = 5
    bracket_penalty: int = 5
    truncation_penalty: int = 3
    # Substrings typical of mangled glyphs
    bracket_markers: Tuple[str, ...] = ("] ", ") ")
    truncation_markers: Tuple[str, ...] = ("irc", "ile")


class TranscriptScorer:
    """Interface for transcript quality heuristics"""

    def score(self, transcript: str) -> int:
        raise NotImplementedError


class KeywordScorer(TranscriptScorer):
    """
    Scores a transcript by vocabulary hits, clean lines and timer lines

    An empty transcript always scores 0.
    """

    def __init__(self, weights: ScoringWeights = None):
        self.weights = weights or ScoringWeights()

    def score(self, transcript: str) -> int:
        if not transcript or not transcript.strip():
            return 0

        w = self.weights
        text = transcript.lower()
        score = 0

        # High value keywords
        if "march queue" in text:
            score += w.header
        if "idle" in text:
            score += w.idle
        if "unlock" in text:
            score += w.unlock
        if "cannot use" in text:
            score += w.cannot_use
        if NUMBERED_HEADER_PATTERN.search(text):
            score += w.numbered_header
        if any(word in text for word in RESOURCE_SITE_WORDS):
            score += w.resource_site

        # Penalties for obvious OCR errors
        if any(marker in text for marker in w.bracket_markers):
            score -= w.bracket_penalty
        if any(marker in text for marker in w.truncation_markers):
            score -= w.truncation_penalty

        # Bonus for clean structure
        for line in text.splitlines():
            clean = line.strip()
            if not clean:
                continue
            if clean in STATUS_KEYWORDS or HEADER_PATTERN.fullmatch(clean):
                score += w.clean_line
            if TIMER_PATTERN.search(clean):
                score += w.timer_line

        return score
