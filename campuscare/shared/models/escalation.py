"""Escalation case domain models.

Defines the enums, value objects and the persisted EscalationCase record
used by the risk-escalation pipeline. Cases are immutable snapshots: every
change produces a new value via dataclasses.replace, and the store decides
what is persisted.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


MAX_EXCERPT_LENGTH = 500


class ValidationError(ValueError):
    """Malformed input to the case store or the triage surface."""
    pass


class Severity(Enum):
    """Ordinal risk level assigned at case creation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank


_SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


class CaseStatus(Enum):
    """Soft lifecycle of a case. Cases are never hard-deleted."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class SourceType(Enum):
    """Producer that created the case."""
    MOOD = "mood"
    CHAT = "chat"
    POST = "post"
    MANUAL = "manual"


class ActionType(Enum):
    """Kinds of reviewer actions recorded on a case."""
    CONTACTED = "contacted"
    BOOKING_CREATED = "booking_created"
    RESOURCES_SHARED = "resources_shared"
    EMERGENCY_CONTACTED = "emergency_contacted"
    FOLLOW_UP = "follow_up"
    STATUS_CHANGE = "status_change"     # Appended automatically on transitions


class MoodCategory(Enum):
    """Mood categories offered by the mood-logging form."""
    VERY_HAPPY = "very_happy"
    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"
    VERY_SAD = "very_sad"
    ANXIOUS = "anxious"
    STRESSED = "stressed"
    ANGRY = "angry"


NEGATIVE_AFFECT_CATEGORIES = frozenset({
    MoodCategory.VERY_SAD,
    MoodCategory.ANXIOUS,
    MoodCategory.STRESSED,
})


def parse_enum(enum_cls, value: Any, field_name: str):
    """Coerce a raw value into enum_cls, raising ValidationError otherwise."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} '{value}'. Expected one of: {allowed}"
        )


def trim_excerpt(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text[:MAX_EXCERPT_LENGTH] if text else None


def clean_text(value: Any, field_name: str, required: bool = False) -> Optional[str]:
    """Strip a free-text input; blank becomes None.

    Raises:
        ValidationError: If value is not a string, or is blank and required
    """
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    else:
        raise ValidationError(f"{field_name} must be a string, got {type(value).__name__}")
    if not text:
        if required:
            raise ValidationError(f"Missing required field(s): {field_name}")
        return None
    return text


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Trigger evidence: one variant per source type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MoodEvidence:
    """Evidence for a case raised from a saved mood entry."""
    mood_id: str
    sentiment_score: Optional[float] = None
    matched_keywords: Tuple[str, ...] = ()
    raw_text_excerpt: Optional[str] = None

    source_type = SourceType.MOOD

    def __post_init__(self):
        if not self.mood_id:
            raise ValidationError("Mood evidence requires a mood_id")
        _check_score(self.sentiment_score)
        object.__setattr__(self, "matched_keywords", tuple(self.matched_keywords))
        object.__setattr__(self, "raw_text_excerpt", trim_excerpt(self.raw_text_excerpt))


@dataclass(frozen=True)
class ChatEvidence:
    """Evidence for a case raised from a chat message."""
    raw_text_excerpt: str
    matched_keywords: Tuple[str, ...] = ()
    sentiment_score: Optional[float] = None

    source_type = SourceType.CHAT

    def __post_init__(self):
        excerpt = trim_excerpt(self.raw_text_excerpt)
        if not excerpt:
            raise ValidationError("Chat evidence requires the message text")
        _check_score(self.sentiment_score)
        object.__setattr__(self, "raw_text_excerpt", excerpt)
        object.__setattr__(self, "matched_keywords", tuple(self.matched_keywords))


@dataclass(frozen=True)
class PostEvidence:
    """Evidence for a case raised from a community post."""
    post_id: str
    raw_text_excerpt: Optional[str] = None
    matched_keywords: Tuple[str, ...] = ()
    sentiment_score: Optional[float] = None

    source_type = SourceType.POST

    def __post_init__(self):
        if not self.post_id:
            raise ValidationError("Post evidence requires a post_id")
        _check_score(self.sentiment_score)
        object.__setattr__(self, "raw_text_excerpt", trim_excerpt(self.raw_text_excerpt))
        object.__setattr__(self, "matched_keywords", tuple(self.matched_keywords))


@dataclass(frozen=True)
class ManualEvidence:
    """Evidence for a case opened by hand by a reviewer."""
    reported_by: str
    notes: Optional[str] = None

    source_type = SourceType.MANUAL

    def __post_init__(self):
        if not self.reported_by:
            raise ValidationError("Manual evidence requires reported_by")


TriggerEvidence = Union[MoodEvidence, ChatEvidence, PostEvidence, ManualEvidence]

_EVIDENCE_TYPES = {
    SourceType.MOOD: MoodEvidence,
    SourceType.CHAT: ChatEvidence,
    SourceType.POST: PostEvidence,
    SourceType.MANUAL: ManualEvidence,
}


def _check_score(score: Optional[float]) -> None:
    if score is not None and not -1.0 <= score <= 1.0:
        raise ValidationError(f"Sentiment score must be -1.0-1.0, got {score}")


def evidence_to_dict(evidence: TriggerEvidence, include_raw_text: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {"source_type": evidence.source_type.value}
    for name in evidence.__dataclass_fields__:
        value = getattr(evidence, name)
        if isinstance(value, tuple):
            value = list(value)
        data[name] = value
    if not include_raw_text:
        data.pop("raw_text_excerpt", None)
    return data


def evidence_from_dict(data: Dict[str, Any]) -> TriggerEvidence:
    """Rebuild an evidence variant from its source_type tag."""
    payload = dict(data)
    source_type = parse_enum(SourceType, payload.pop("source_type", None), "source_type")
    evidence_cls = _EVIDENCE_TYPES[source_type]
    known = {k: v for k, v in payload.items() if k in evidence_cls.__dataclass_fields__}
    return evidence_cls(**known)


# ---------------------------------------------------------------------------
# Case record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CaseAction:
    """One entry of a case's append-only action log."""
    action_type: ActionType
    description: str
    performed_by: str
    performed_at: datetime = field(default_factory=datetime.utcnow)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "description": self.description,
            "performed_by": self.performed_by,
            "performed_at": _isoformat(self.performed_at),
            "notes": self.notes,
        }

    def to_document(self) -> Dict[str, Any]:
        doc = self.to_dict()
        doc["performed_at"] = self.performed_at
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CaseAction":
        return cls(
            action_type=ActionType(doc["action_type"]),
            description=doc.get("description", ""),
            performed_by=doc.get("performed_by", ""),
            performed_at=doc.get("performed_at") or datetime.utcnow(),
            notes=doc.get("notes"),
        )


@dataclass(frozen=True)
class Resolution:
    """Outcome of a resolved case. Written exactly once."""
    outcome: str
    resolved_by: str
    notes: Optional[str] = None
    resolved_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "notes": self.notes,
            "resolved_by": self.resolved_by,
            "resolved_at": _isoformat(self.resolved_at),
        }

    def to_document(self) -> Dict[str, Any]:
        doc = self.to_dict()
        doc["resolved_at"] = self.resolved_at
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Resolution":
        return cls(
            outcome=doc["outcome"],
            resolved_by=doc["resolved_by"],
            notes=doc.get("notes"),
            resolved_at=doc.get("resolved_at") or datetime.utcnow(),
        )


@dataclass(frozen=True)
class EmergencyContact:
    """Someone to reach on the student's behalf. Reviewer-only data."""
    name: str
    relationship: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contacted: bool = False
    contacted_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name:
            raise ValidationError("Emergency contact requires a name")
        if not self.phone and not self.email:
            raise ValidationError("Emergency contact requires a phone or an email")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "relationship": self.relationship,
            "phone": self.phone,
            "email": self.email,
            "contacted": self.contacted,
            "contacted_at": _isoformat(self.contacted_at),
        }

    def to_document(self) -> Dict[str, Any]:
        doc = self.to_dict()
        doc["contacted_at"] = self.contacted_at
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EmergencyContact":
        return cls(
            name=doc["name"],
            relationship=doc.get("relationship"),
            phone=doc.get("phone"),
            email=doc.get("email"),
            contacted=doc.get("contacted", False),
            contacted_at=doc.get("contacted_at"),
        )


@dataclass(frozen=True)
class EscalationCase:
    """A persisted risk signal awaiting human review.

    id, subject_user_id, source_type, trigger_evidence and created_at never
    change after creation. actions only grows.
    """
    id: str
    subject_user_id: str
    source_type: SourceType
    severity: Severity
    trigger_evidence: TriggerEvidence
    description: str
    status: CaseStatus = CaseStatus.OPEN
    assigned_to: Optional[str] = None
    actions: Tuple[CaseAction, ...] = ()
    emergency_contacts: Tuple[EmergencyContact, ...] = ()
    resolution: Optional[Resolution] = None
    priority: int = 3
    follow_up_required: bool = False
    follow_up_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.trigger_evidence.source_type != self.source_type:
            raise ValidationError(
                f"Evidence for '{self.trigger_evidence.source_type.value}' "
                f"cannot back a '{self.source_type.value}' case"
            )
        validate_priority(self.priority)

    def with_changes(self, **changes) -> "EscalationCase":
        return replace(self, **changes)

    def to_dict(self, include_raw_text: bool = False) -> Dict[str, Any]:
        """Serialize for API responses.

        The raw text excerpt and the emergency contacts are reviewer-only
        fields; callers pass include_raw_text=True only for counselor/admin
        identities.
        """
        return {
            "id": self.id,
            "subject_user_id": self.subject_user_id,
            "source_type": self.source_type.value,
            "severity": self.severity.value,
            "trigger_evidence": evidence_to_dict(self.trigger_evidence, include_raw_text),
            "description": self.description,
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "actions": [action.to_dict() for action in self.actions],
            "emergency_contacts": (
                [contact.to_dict() for contact in self.emergency_contacts]
                if include_raw_text else []
            ),
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "priority": self.priority,
            "follow_up_required": self.follow_up_required,
            "follow_up_date": _isoformat(self.follow_up_date),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def to_document(self) -> Dict[str, Any]:
        """Convert to a document-store record keyed by _id."""
        return {
            "_id": self.id,
            "subject_user_id": self.subject_user_id,
            "source_type": self.source_type.value,
            "severity": self.severity.value,
            "trigger_evidence": evidence_to_dict(self.trigger_evidence),
            "description": self.description,
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "actions": [action.to_document() for action in self.actions],
            "emergency_contacts": [contact.to_document() for contact in self.emergency_contacts],
            "resolution": self.resolution.to_document() if self.resolution else None,
            "priority": self.priority,
            "follow_up_required": self.follow_up_required,
            "follow_up_date": self.follow_up_date,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EscalationCase":
        resolution = doc.get("resolution")
        return cls(
            id=doc["_id"],
            subject_user_id=doc["subject_user_id"],
            source_type=SourceType(doc["source_type"]),
            severity=Severity(doc["severity"]),
            trigger_evidence=evidence_from_dict(doc["trigger_evidence"]),
            description=doc["description"],
            status=CaseStatus(doc.get("status", CaseStatus.OPEN.value)),
            assigned_to=doc.get("assigned_to"),
            actions=tuple(CaseAction.from_document(a) for a in doc.get("actions", [])),
            emergency_contacts=tuple(
                EmergencyContact.from_document(c) for c in doc.get("emergency_contacts", [])
            ),
            resolution=Resolution.from_document(resolution) if resolution else None,
            priority=doc.get("priority", 3),
            follow_up_required=doc.get("follow_up_required", False),
            follow_up_date=doc.get("follow_up_date"),
            created_at=doc["created_at"],
            updated_at=doc.get("updated_at") or doc["created_at"],
        )


def validate_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
        raise ValidationError(f"Priority must be an integer 1-5, got {priority!r}")
    return priority
