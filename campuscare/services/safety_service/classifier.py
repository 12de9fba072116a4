"""Risk classifier: decides whether content warrants an escalation case.

Rules, in precedence order:
1. Emergency keywords in the text             -> critical
2. Negative sentiment, magnitude > 0.7        -> medium, or high above 0.8
3. very_sad/anxious/stressed mood, intensity >= 8 -> medium
4. Negative sentiment, magnitude > 0.5        -> medium
5. Otherwise no escalation

The reason comes from the first rule that matches; the severity is the
highest implied by any matching rule. Rule 1 is terminal.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from campuscare.shared.models import (
    MoodCategory,
    NEGATIVE_AFFECT_CATEGORIES,
    Severity,
    ValidationError,
    parse_enum,
)
from .config import ClassifierThresholds
from .keyword_detector import EmergencyKeywordDetector, get_default_detector
from .sentiment import (
    SentimentLabel,
    SentimentProvider,
    SentimentResult,
    RuleBasedSentimentProvider,
    analyze_sentiment,
)

logger = logging.getLogger(__name__)


REASON_EMERGENCY = "emergency keywords detected"
REASON_HIGH_NEGATIVE = "high negative sentiment detected"
REASON_MOOD_INTENSITY = "high intensity negative mood"
REASON_NEGATIVE = "negative sentiment detected"


@dataclass(frozen=True)
class StructuredMood:
    """Mood category and intensity as logged by the student."""
    category: MoodCategory
    intensity: int

    def __post_init__(self):
        object.__setattr__(
            self, "category", parse_enum(MoodCategory, self.category, "mood category")
        )
        if isinstance(self.intensity, bool) or not isinstance(self.intensity, int) \
                or not 1 <= self.intensity <= 10:
            raise ValidationError(f"Intensity must be an integer 1-10, got {self.intensity!r}")


@dataclass(frozen=True)
class ClassificationInput:
    free_text: Optional[str] = None
    structured_mood: Optional[StructuredMood] = None

    @property
    def has_text(self) -> bool:
        return bool(self.free_text and self.free_text.strip())


@dataclass(frozen=True)
class ClassificationResult:
    """Verdict for one producer event.

    sentiment and matched_keywords are carried so callers can build case
    evidence without analysing the text again.
    """
    escalation_warranted: bool
    severity: Optional[Severity]
    reason: str
    sentiment: Optional[SentimentResult] = None
    matched_keywords: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "escalation_warranted": self.escalation_warranted,
            "severity": self.severity.value if self.severity else None,
            "reason": self.reason,
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
            "matched_keywords": list(self.matched_keywords),
        }


NO_ESCALATION_REASON = "no risk indicators"


def classify(
    classification_input: ClassificationInput,
    sentiment: Optional[SentimentResult] = None,
    detector: Optional[EmergencyKeywordDetector] = None,
    thresholds: Optional[ClassifierThresholds] = None,
) -> ClassificationResult:
    """Apply the escalation policy. Pure: no I/O, no state.

    Args:
        classification_input: Free text and/or structured mood
        sentiment: Pre-computed sentiment for the free text; computed with
            the rule-based analyzer when omitted
        detector: Emergency keyword detector (default phrase list)
        thresholds: Classifier cut-offs
    """
    detector = detector or get_default_detector()
    thresholds = thresholds or ClassifierThresholds()
    text = classification_input.free_text if classification_input.has_text else None

    if text is not None:
        matched = detector.extract_matched_keywords(text)
        if sentiment is None:
            sentiment = analyze_sentiment(text)
        if matched:
            return ClassificationResult(
                escalation_warranted=True,
                severity=Severity.CRITICAL,
                reason=REASON_EMERGENCY,
                sentiment=sentiment,
                matched_keywords=tuple(matched),
            )
    else:
        sentiment = None

    hits: List[Tuple[str, Severity]] = []
    negative = sentiment is not None and sentiment.label == SentimentLabel.NEGATIVE

    if negative and sentiment.magnitude > thresholds.HIGH_NEGATIVE_MAGNITUDE:
        if sentiment.magnitude > thresholds.HIGH_SEVERITY_MAGNITUDE:
            hits.append((REASON_HIGH_NEGATIVE, Severity.HIGH))
        else:
            hits.append((REASON_HIGH_NEGATIVE, Severity.MEDIUM))

    mood = classification_input.structured_mood
    if mood is not None and mood.category in NEGATIVE_AFFECT_CATEGORIES \
            and mood.intensity >= thresholds.MOOD_INTENSITY:
        hits.append((REASON_MOOD_INTENSITY, Severity.MEDIUM))

    if negative and sentiment.magnitude > thresholds.NEGATIVE_MAGNITUDE:
        hits.append((REASON_NEGATIVE, Severity.MEDIUM))

    if not hits:
        return ClassificationResult(
            escalation_warranted=False,
            severity=None,
            reason=NO_ESCALATION_REASON,
            sentiment=sentiment,
        )

    return ClassificationResult(
        escalation_warranted=True,
        severity=max((severity for _, severity in hits), key=lambda s: s.rank),
        reason=hits[0][0],
        sentiment=sentiment,
    )


class RiskClassifier:
    """Async classifier bound to a sentiment provider.

    The provider is chosen at configuration time; the decision policy is
    the same pure classify() function either way.
    """

    def __init__(
        self,
        provider: Optional[SentimentProvider] = None,
        detector: Optional[EmergencyKeywordDetector] = None,
        thresholds: Optional[ClassifierThresholds] = None,
    ):
        self.provider = provider or RuleBasedSentimentProvider()
        self.detector = detector or get_default_detector()
        self.thresholds = thresholds or ClassifierThresholds()

        logger.info(
            "RISK_CLASSIFIER_INITIALIZED",
            extra={
                "sentiment_provider": self.provider.name,
                "keyword_count": len(self.detector.keywords),
            }
        )

    async def classify(self, classification_input: ClassificationInput) -> ClassificationResult:
        sentiment = None
        if classification_input.has_text:
            sentiment = await self.provider.analyze(classification_input.free_text)

        result = classify(
            classification_input,
            sentiment=sentiment,
            detector=self.detector,
            thresholds=self.thresholds,
        )

        if result.severity == Severity.CRITICAL:
            logger.critical(
                "RISK_CLASSIFIER_EMERGENCY",
                extra={
                    "keyword_count": len(result.matched_keywords),
                    "action": "ESCALATION_REQUIRED",
                }
            )
        elif result.escalation_warranted:
            logger.warning(
                "RISK_CLASSIFIER_ESCALATION",
                extra={"severity": result.severity.value, "reason": result.reason}
            )

        return result
