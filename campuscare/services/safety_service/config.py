"""Safety Service configuration: phrase lists, word lists and thresholds.

All lists are process-wide read-only constants and are injected into the
detector, analyzer and classifier at construction.
"""
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple


# Phrases that mark a message as an emergency. Order matters: matched
# keywords are reported in this declaration order.
EMERGENCY_KEYWORDS: Tuple[str, ...] = (
    "suicide",
    "kill myself",
    "end my life",
    "want to die",
    "self harm",
    "hurt myself",
    "overdose",
    "pills",
    "jump",
    "bridge",
    "rope",
    "gun",
    "knife",
    "cutting",
    "hopeless",
    "worthless",
    "burden",
    "everyone better without me",
)


POSITIVE_WORDS: FrozenSet[str] = frozenset({
    "happy", "good", "great", "excellent", "amazing",
    "wonderful", "fantastic", "love", "joy", "excited",
})

NEGATIVE_WORDS: FrozenSet[str] = frozenset({
    "sad", "bad", "terrible", "awful", "hate",
    "angry", "depressed", "anxious", "worried", "stressed",
})


@dataclass(frozen=True)
class SentimentLexicon:
    """Word sets used by the rule-based sentiment analyzer."""
    positive: FrozenSet[str] = POSITIVE_WORDS
    negative: FrozenSet[str] = NEGATIVE_WORDS
    positive_label_threshold: float = 0.1
    negative_label_threshold: float = -0.1


@dataclass(frozen=True)
class ClassifierThresholds:
    """Cut-offs used by the risk classifier.

    One set serves both the mood and chat paths.
    """
    HIGH_NEGATIVE_MAGNITUDE: float = 0.7    # Rule 2: strong negative sentiment
    HIGH_SEVERITY_MAGNITUDE: float = 0.8    # Rule 2: above this severity is high
    NEGATIVE_MAGNITUDE: float = 0.5         # Rule 4: moderate negative sentiment
    MOOD_INTENSITY: int = 8                 # Rule 3: intensity on a 1-10 scale


@dataclass(frozen=True)
class SentimentConfig:
    """Selects and configures the sentiment provider.

    Without a backend URL the deterministic rule-based analyzer is used.
    """
    backend_url: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    timeout_seconds: float = 2.0

    @property
    def backend_enabled(self) -> bool:
        return bool(self.backend_url)

    @classmethod
    def from_env(cls) -> "SentimentConfig":
        """Create config from environment variables.

        Environment variables:
            SENTIMENT_BACKEND_URL: External analysis endpoint (optional)
            SENTIMENT_BACKEND_API_KEY: Bearer token for the endpoint
            SENTIMENT_BACKEND_TIMEOUT_SECONDS: Per-call timeout (default 2.0)
        """
        return cls(
            backend_url=os.getenv("SENTIMENT_BACKEND_URL") or None,
            api_key=os.getenv("SENTIMENT_BACKEND_API_KEY") or None,
            timeout_seconds=float(os.getenv("SENTIMENT_BACKEND_TIMEOUT_SECONDS", "2.0")),
        )
