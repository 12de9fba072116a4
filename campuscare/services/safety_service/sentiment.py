"""Sentiment analysis capability.

SentimentProvider is the interface the classifier depends on. The
rule-based provider is the deterministic reference; an external backend
(see sentiment_backend.py) can be substituted at configuration time.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .config import SentimentLexicon

logger = logging.getLogger(__name__)


class SentimentLabel(Enum):
    """Sentiment classification labels."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class SentimentResult:
    """Polarity reading of a piece of text. Not persisted."""
    score: float        # -1.0 to 1.0
    magnitude: float    # 0.0 to 1.0
    label: SentimentLabel

    def __post_init__(self):
        if not -1.0 <= self.score <= 1.0:
            raise ValueError(f"Score must be -1.0-1.0, got {self.score}")
        if not 0.0 <= self.magnitude <= 1.0:
            raise ValueError(f"Magnitude must be 0.0-1.0, got {self.magnitude}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 3),
            "magnitude": round(self.magnitude, 3),
            "label": self.label.value,
        }


NEUTRAL_RESULT = SentimentResult(score=0.0, magnitude=0.0, label=SentimentLabel.NEUTRAL)

DEFAULT_LEXICON = SentimentLexicon()


def analyze_sentiment(
    text: Optional[str],
    lexicon: SentimentLexicon = DEFAULT_LEXICON,
) -> SentimentResult:
    """Score text by counting positive and negative word tokens.

    score = (positive - negative) / token_count. Empty or whitespace-only
    text yields the neutral zero result.
    """
    tokens = text.lower().split() if text else []
    if not tokens:
        return NEUTRAL_RESULT

    positive = sum(1 for token in tokens if token in lexicon.positive)
    negative = sum(1 for token in tokens if token in lexicon.negative)
    score = (positive - negative) / len(tokens)

    if score > lexicon.positive_label_threshold:
        label = SentimentLabel.POSITIVE
    elif score < lexicon.negative_label_threshold:
        label = SentimentLabel.NEGATIVE
    else:
        label = SentimentLabel.NEUTRAL

    return SentimentResult(score=score, magnitude=abs(score), label=label)


class SentimentProvider(ABC):
    """Capability interface for sentiment analysis.

    Implementations must always return a result; failures are handled
    inside the provider.
    """

    name: str = "provider"

    @abstractmethod
    async def analyze(self, text: str) -> SentimentResult:
        pass


class RuleBasedSentimentProvider(SentimentProvider):
    """Deterministic word-list analyzer."""

    name = "rule_based"

    def __init__(self, lexicon: SentimentLexicon = DEFAULT_LEXICON):
        self.lexicon = lexicon

    async def analyze(self, text: str) -> SentimentResult:
        return analyze_sentiment(text, self.lexicon)
