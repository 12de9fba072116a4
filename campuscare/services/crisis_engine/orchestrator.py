"""Escalation orchestrator - turns producer events into escalation cases.

Two call conventions, kept apart on purpose:
- EscalationOrchestrator methods propagate errors. Used for manual
  escalation and anywhere the caller must know the write happened.
- ProducerEscalationHooks wrap the orchestrator for the mood, chat and
  post flows. They log and swallow every failure so a student's save or
  message never fails because escalation did.
"""
import logging
from typing import Any, Dict, Optional

from campuscare.shared.models import (
    ChatEvidence,
    EscalationCase,
    ManualEvidence,
    MoodEvidence,
    PostEvidence,
    Severity,
    SourceType,
    TriggerEvidence,
    clean_text,
    parse_enum,
)
from campuscare.shared.utils import fingerprint_text, hash_pii
from campuscare.services.safety_service import (
    ClassificationInput,
    ClassificationResult,
    RiskClassifier,
    StructuredMood,
)
from .store import EscalationStore

logger = logging.getLogger(__name__)


_SOURCE_LABELS = {
    SourceType.MOOD: "Mood entry flagged",
    SourceType.CHAT: "Chat message flagged",
    SourceType.POST: "Community post flagged",
}


def describe(source_type: SourceType, result: ClassificationResult) -> str:
    """Human-readable summary written to the case at creation."""
    return f"{_SOURCE_LABELS[source_type]}: {result.reason} (severity: {result.severity.value})"


class EscalationOrchestrator:
    """Classifies producer events and opens a case when warranted.

    Stateless per call: exactly one case per qualifying event, no merging
    of repeated events for the same student.
    """

    def __init__(
        self,
        store: EscalationStore,
        classifier: Optional[RiskClassifier] = None,
    ):
        """Initialize orchestrator.

        Args:
            store: Escalation case store
            classifier: Risk classifier (rule-based by default)
        """
        self.store = store
        self.classifier = classifier or RiskClassifier()

        logger.info(
            "ESCALATION_ORCHESTRATOR_INITIALIZED",
            extra={"sentiment_provider": self.classifier.provider.name}
        )

    async def handle_mood_event(
        self,
        user_id: str,
        mood_id: str,
        mood_category: Any,
        intensity: int,
        notes: Optional[str] = None,
    ) -> Optional[EscalationCase]:
        """Classify a saved mood entry.

        Args:
            user_id: Student who logged the mood
            mood_id: Id of the persisted mood entry
            mood_category: MoodCategory or its string value
            intensity: 1-10
            notes: Optional free-text notes

        Returns:
            The created case, or None when no escalation is warranted
        """
        result = await self.classifier.classify(ClassificationInput(
            free_text=notes,
            structured_mood=StructuredMood(category=mood_category, intensity=intensity),
        ))
        if not result.escalation_warranted:
            return None

        evidence = MoodEvidence(
            mood_id=mood_id,
            sentiment_score=result.sentiment.score if result.sentiment else None,
            matched_keywords=result.matched_keywords,
            raw_text_excerpt=notes,
        )
        return await self._open_case(user_id, SourceType.MOOD, result, evidence)

    async def handle_chat_event(self, user_id: str, message: str) -> Optional[EscalationCase]:
        """Classify a chat message sent by a student."""
        if not message or not message.strip():
            return None

        result = await self.classifier.classify(ClassificationInput(free_text=message))
        if not result.escalation_warranted:
            return None

        evidence = ChatEvidence(
            raw_text_excerpt=message,
            matched_keywords=result.matched_keywords,
            sentiment_score=result.sentiment.score if result.sentiment else None,
        )
        return await self._open_case(user_id, SourceType.CHAT, result, evidence)

    async def handle_post_event(
        self,
        user_id: str,
        post_id: str,
        content: str,
    ) -> Optional[EscalationCase]:
        """Classify a community post."""
        if not content or not content.strip():
            return None

        result = await self.classifier.classify(ClassificationInput(free_text=content))
        if not result.escalation_warranted:
            return None

        evidence = PostEvidence(
            post_id=post_id,
            raw_text_excerpt=content,
            matched_keywords=result.matched_keywords,
            sentiment_score=result.sentiment.score if result.sentiment else None,
        )
        return await self._open_case(user_id, SourceType.POST, result, evidence)

    async def escalate_manually(
        self,
        subject_user_id: str,
        severity: Any,
        description: str,
        reported_by: str,
        notes: Optional[str] = None,
        priority: int = 3,
    ) -> EscalationCase:
        """Open a case by hand. Errors propagate to the caller.

        Raises:
            ValidationError: If a field is missing or malformed
            PersistenceError: If the store write fails
        """
        description = clean_text(description, "description", required=True)
        notes = clean_text(notes, "notes")
        student_id_hash = hash_pii(subject_user_id)

        case = await self.store.create({
            "subject_user_id": subject_user_id,
            "source_type": SourceType.MANUAL,
            "severity": parse_enum(Severity, severity, "severity"),
            "trigger_evidence": ManualEvidence(reported_by=reported_by, notes=notes),
            "description": description,
            "priority": priority,
        })

        logger.warning(
            "ESCALATION_CASE_CREATED",
            extra={
                "case_id": case.id,
                "student_id_hash": student_id_hash,
                "source_type": SourceType.MANUAL.value,
                "severity": case.severity.value,
                "reported_by": reported_by,
            }
        )
        return case

    async def _open_case(
        self,
        user_id: str,
        source_type: SourceType,
        result: ClassificationResult,
        evidence: TriggerEvidence,
    ) -> EscalationCase:
        student_id_hash = hash_pii(user_id)
        case = await self.store.create({
            "subject_user_id": user_id,
            "source_type": source_type,
            "severity": result.severity,
            "trigger_evidence": evidence,
            "description": describe(source_type, result),
            "priority": 3,
        })

        log = logger.critical if result.severity == Severity.CRITICAL else logger.warning
        log(
            "ESCALATION_CASE_CREATED",
            extra={
                "case_id": case.id,
                "student_id_hash": student_id_hash,
                "source_type": source_type.value,
                "severity": case.severity.value,
                "reason": result.reason,
                "keyword_count": len(result.matched_keywords),
            }
        )
        return case


class ProducerEscalationHooks:
    """Fire-and-log entry points for producer flows.

    Every method returns the created case, or None when nothing was
    created or escalation failed. Nothing is ever raised to the producer.
    """

    def __init__(self, orchestrator: EscalationOrchestrator):
        self.orchestrator = orchestrator

    async def on_mood_saved(
        self,
        user_id: str,
        mood_id: str,
        mood_category: Any,
        intensity: int,
        notes: Optional[str] = None,
    ) -> Optional[EscalationCase]:
        try:
            return await self.orchestrator.handle_mood_event(
                user_id, mood_id, mood_category, intensity, notes
            )
        except Exception as e:
            self._log_failure("mood", user_id, e, {"mood_id": mood_id})
            return None

    async def on_chat_message(self, user_id: str, message: str) -> Optional[EscalationCase]:
        try:
            return await self.orchestrator.handle_chat_event(user_id, message)
        except Exception as e:
            extra = {"text_fingerprint": fingerprint_text(str(message or ""))}
            self._log_failure("chat", user_id, e, extra)
            return None

    async def on_post_created(
        self,
        user_id: str,
        post_id: str,
        content: str,
    ) -> Optional[EscalationCase]:
        try:
            return await self.orchestrator.handle_post_event(user_id, post_id, content)
        except Exception as e:
            self._log_failure("post", user_id, e, {"post_id": post_id})
            return None

    @staticmethod
    def _log_failure(
        source: str,
        user_id: str,
        error: Exception,
        extra: Dict[str, Any],
    ) -> None:
        try:
            student_id_hash = hash_pii(user_id)
        except RuntimeError:
            student_id_hash = None
        logger.error(
            "ESCALATION_PRODUCER_FAILED",
            extra={
                "source_type": source,
                "student_id_hash": student_id_hash,
                "error_type": type(error).__name__,
                "error": str(error),
                **extra,
            }
        )
