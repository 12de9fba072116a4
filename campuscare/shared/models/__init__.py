"""Shared domain models for the CampusCare escalation pipeline."""
from .escalation import (
    ValidationError,
    Severity,
    CaseStatus,
    SourceType,
    ActionType,
    MoodCategory,
    NEGATIVE_AFFECT_CATEGORIES,
    MoodEvidence,
    ChatEvidence,
    PostEvidence,
    ManualEvidence,
    TriggerEvidence,
    CaseAction,
    Resolution,
    EmergencyContact,
    EscalationCase,
    clean_text,
    evidence_from_dict,
    evidence_to_dict,
    parse_enum,
    validate_priority,
)

__all__ = [
    "ValidationError",
    "Severity",
    "CaseStatus",
    "SourceType",
    "ActionType",
    "MoodCategory",
    "NEGATIVE_AFFECT_CATEGORIES",
    "MoodEvidence",
    "ChatEvidence",
    "PostEvidence",
    "ManualEvidence",
    "TriggerEvidence",
    "CaseAction",
    "Resolution",
    "EmergencyContact",
    "EscalationCase",
    "clean_text",
    "evidence_from_dict",
    "evidence_to_dict",
    "parse_enum",
    "validate_priority",
]
