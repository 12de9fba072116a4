"""Emergency keyword detection.

Case-insensitive phrase containment over whitespace-normalized text.
Pure and stateless: the phrase list is fixed at construction.
"""
import logging
import re
from typing import Iterable, List, Optional, Tuple

from .config import EMERGENCY_KEYWORDS

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Lower-case and collapse whitespace runs to single spaces."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.lower()).strip()


class EmergencyKeywordDetector:
    """Scans text against a fixed list of high-risk phrases."""

    def __init__(self, keywords: Iterable[str] = EMERGENCY_KEYWORDS):
        """Initialize detector.

        Args:
            keywords: Phrases in reporting order. Duplicates are dropped.
        """
        seen = set()
        ordered = []
        for keyword in keywords:
            phrase = normalize_text(keyword)
            if phrase and phrase not in seen:
                seen.add(phrase)
                ordered.append(phrase)
        self.keywords: Tuple[str, ...] = tuple(ordered)

        logger.info(
            "KEYWORD_DETECTOR_INITIALIZED",
            extra={"keyword_count": len(self.keywords)}
        )

    def detect_emergency(self, text: Optional[str]) -> bool:
        normalized = normalize_text(text)
        return any(keyword in normalized for keyword in self.keywords)

    def extract_matched_keywords(self, text: Optional[str]) -> List[str]:
        """Return every matching phrase, in list-declaration order."""
        normalized = normalize_text(text)
        return [keyword for keyword in self.keywords if keyword in normalized]


_default_detector: Optional[EmergencyKeywordDetector] = None


def get_default_detector() -> EmergencyKeywordDetector:
    global _default_detector
    if _default_detector is None:
        _default_detector = EmergencyKeywordDetector()
    return _default_detector


def detect_emergency(text: Optional[str]) -> bool:
    return get_default_detector().detect_emergency(text)


def extract_matched_keywords(text: Optional[str]) -> List[str]:
    return get_default_detector().extract_matched_keywords(text)
