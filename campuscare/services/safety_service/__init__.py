"""Safety Service: risk detection for student-authored content.

Components:
- keyword_detector.py: EmergencyKeywordDetector over a fixed phrase list
- sentiment.py: SentimentProvider interface and rule-based analyzer
- sentiment_backend.py: optional external analyzer with timeout/fallback
- classifier.py: RiskClassifier escalation policy
- config.py: phrase lists, word lists and thresholds

Usage:
    from campuscare.services.safety_service import RiskClassifier, ClassificationInput
    classifier = RiskClassifier(provider=build_sentiment_provider())
    result = await classifier.classify(ClassificationInput(free_text=message))
"""

from .config import (
    EMERGENCY_KEYWORDS,
    ClassifierThresholds,
    SentimentConfig,
    SentimentLexicon,
)
from .keyword_detector import (
    EmergencyKeywordDetector,
    detect_emergency,
    extract_matched_keywords,
)
from .sentiment import (
    SentimentLabel,
    SentimentProvider,
    SentimentResult,
    RuleBasedSentimentProvider,
    analyze_sentiment,
)
from .sentiment_backend import (
    ClassificationBackendError,
    ExternalSentimentProvider,
    build_sentiment_provider,
)
from .classifier import (
    ClassificationInput,
    ClassificationResult,
    RiskClassifier,
    StructuredMood,
    classify,
)

__all__ = [
    "EMERGENCY_KEYWORDS",
    "ClassifierThresholds",
    "SentimentConfig",
    "SentimentLexicon",
    "EmergencyKeywordDetector",
    "detect_emergency",
    "extract_matched_keywords",
    "SentimentLabel",
    "SentimentProvider",
    "SentimentResult",
    "RuleBasedSentimentProvider",
    "analyze_sentiment",
    "ClassificationBackendError",
    "ExternalSentimentProvider",
    "build_sentiment_provider",
    "ClassificationInput",
    "ClassificationResult",
    "RiskClassifier",
    "StructuredMood",
    "classify",
]
