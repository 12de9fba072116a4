"""Escalation case store: contract and in-memory implementation.

The store is the only shared mutable resource of the pipeline. Every
mutation of a case is atomic with respect to that case, and action
appends are never lost to concurrent writers.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from campuscare.shared.database import NotFoundError
from campuscare.shared.models import (
    CaseAction,
    CaseStatus,
    EmergencyContact,
    EscalationCase,
    Resolution,
    Severity,
    SourceType,
    ValidationError,
    evidence_from_dict,
    parse_enum,
    validate_priority,
)

logger = logging.getLogger(__name__)

REQUIRED_CASE_FIELDS = ("subject_user_id", "source_type", "severity", "description")


def new_case_id() -> str:
    return f"esc_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class CaseFilter:
    """Optional equality filters for listing cases."""
    status: Optional[CaseStatus] = None
    severity: Optional[Severity] = None
    assigned_to: Optional[str] = None

    def matches(self, case: EscalationCase) -> bool:
        if self.status is not None and case.status != self.status:
            return False
        if self.severity is not None and case.severity != self.severity:
            return False
        if self.assigned_to is not None and case.assigned_to != self.assigned_to:
            return False
        return True


@dataclass(frozen=True)
class CaseMutation:
    """Changes applied to one case in a single atomic update.

    resolution is only written when the case has none yet; a case keeps
    its first resolution for its whole life.

    contacted_index marks an existing emergency contact as reached.
    """
    status: Optional[CaseStatus] = None
    assigned_to: Optional[str] = None
    clear_assignee: bool = False
    priority: Optional[int] = None
    severity: Optional[Severity] = None
    follow_up_required: Optional[bool] = None
    follow_up_date: Optional[datetime] = None
    append_action: Optional[CaseAction] = None
    resolution: Optional[Resolution] = None
    append_contact: Optional[EmergencyContact] = None
    contacted_index: Optional[int] = None

    def __post_init__(self):
        if self.priority is not None:
            validate_priority(self.priority)
        if self.clear_assignee and self.assigned_to is not None:
            raise ValidationError("Cannot both assign and clear the assignee")
        if self.contacted_index is not None and (
            isinstance(self.contacted_index, bool)
            or not isinstance(self.contacted_index, int)
            or self.contacted_index < 0
        ):
            raise ValidationError(f"Invalid contact index {self.contacted_index!r}")

    def scalar_changes(self) -> Dict[str, Any]:
        """Field values to overwrite, excluding the action log and resolution."""
        changes: Dict[str, Any] = {}
        if self.status is not None:
            changes["status"] = self.status
        if self.assigned_to is not None:
            changes["assigned_to"] = self.assigned_to
        if self.clear_assignee:
            changes["assigned_to"] = None
        if self.priority is not None:
            changes["priority"] = self.priority
        if self.severity is not None:
            changes["severity"] = self.severity
        if self.follow_up_required is not None:
            changes["follow_up_required"] = self.follow_up_required
        if self.follow_up_date is not None:
            changes["follow_up_date"] = self.follow_up_date
        return changes


def build_case(fields: Mapping[str, Any], now: Optional[datetime] = None) -> EscalationCase:
    """Validate creation fields and build a new open case.

    Raises:
        ValidationError: If a required field is missing or malformed
    """
    missing = [name for name in REQUIRED_CASE_FIELDS if not fields.get(name)]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

    evidence = fields.get("trigger_evidence")
    if evidence is None:
        raise ValidationError("Missing required field(s): trigger_evidence")
    if isinstance(evidence, Mapping):
        evidence = evidence_from_dict(evidence)

    now = now or datetime.utcnow()
    return EscalationCase(
        id=new_case_id(),
        subject_user_id=str(fields["subject_user_id"]),
        source_type=parse_enum(SourceType, fields["source_type"], "source_type"),
        severity=parse_enum(Severity, fields["severity"], "severity"),
        trigger_evidence=evidence,
        description=fields["description"],
        status=CaseStatus.OPEN,
        priority=fields.get("priority", 3),
        follow_up_required=bool(fields.get("follow_up_required", False)),
        follow_up_date=fields.get("follow_up_date"),
        created_at=now,
        updated_at=now,
    )


def apply_mutation(
    case: EscalationCase,
    mutation: CaseMutation,
    now: Optional[datetime] = None,
) -> EscalationCase:
    changes = mutation.scalar_changes()
    if mutation.append_action is not None:
        changes["actions"] = case.actions + (mutation.append_action,)
    now = now or datetime.utcnow()
    contacts = case.emergency_contacts
    if mutation.contacted_index is not None:
        if mutation.contacted_index >= len(contacts):
            raise ValidationError(f"Case has no emergency contact {mutation.contacted_index}")
        contacts = tuple(
            replace(contact, contacted=True, contacted_at=now)
            if i == mutation.contacted_index else contact
            for i, contact in enumerate(contacts)
        )
    if mutation.append_contact is not None:
        contacts = contacts + (mutation.append_contact,)
    if contacts is not case.emergency_contacts:
        changes["emergency_contacts"] = contacts
    if mutation.resolution is not None and case.resolution is None:
        changes["resolution"] = mutation.resolution
    changes["updated_at"] = now
    return case.with_changes(**changes)


class EscalationStore(ABC):
    """Persistence contract for escalation cases. All I/O is async."""

    @abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> EscalationCase:
        """Persist a new case with status open.

        Raises:
            ValidationError: If a required field is missing
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def find_by_id(self, case_id: str) -> Optional[EscalationCase]:
        pass

    @abstractmethod
    async def list_cases(
        self,
        case_filter: Optional[CaseFilter] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[EscalationCase], int]:
        """Return one page of matching cases, newest first, and the total."""
        pass

    @abstractmethod
    async def update(self, case_id: str, mutation: CaseMutation) -> EscalationCase:
        """Apply a mutation atomically and return the updated case.

        Raises:
            NotFoundError: If the case does not exist
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def summarize(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Count cases created since a moment, by status and by severity."""
        pass

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "ok", "healthy": True}


def check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError(f"Page must be >= 1, got {page}")
    if page_size < 1:
        raise ValidationError(f"Page size must be >= 1, got {page_size}")


class InMemoryEscalationStore(EscalationStore):
    """Process-local store for development and tests.

    A single asyncio.Lock serializes mutations, so read-modify-write of a
    case cannot interleave with another writer.
    """

    def __init__(self):
        self._cases: Dict[str, EscalationCase] = {}
        self._lock = asyncio.Lock()

        logger.info("ESCALATION_STORE_INITIALIZED", extra={"backend": "memory"})

    async def create(self, fields: Mapping[str, Any]) -> EscalationCase:
        case = build_case(fields)
        async with self._lock:
            self._cases[case.id] = case

        logger.info(
            "ESCALATION_CASE_STORED",
            extra={"case_id": case.id, "severity": case.severity.value}
        )
        return case

    async def find_by_id(self, case_id: str) -> Optional[EscalationCase]:
        return self._cases.get(case_id)

    async def list_cases(
        self,
        case_filter: Optional[CaseFilter] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[EscalationCase], int]:
        check_page(page, page_size)
        case_filter = case_filter or CaseFilter()

        matching = [c for c in self._cases.values() if case_filter.matches(c)]
        matching.sort(key=lambda c: c.created_at, reverse=True)

        start = (page - 1) * page_size
        return matching[start:start + page_size], len(matching)

    async def update(self, case_id: str, mutation: CaseMutation) -> EscalationCase:
        async with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                raise NotFoundError(f"Escalation case {case_id} not found")
            updated = apply_mutation(case, mutation)
            self._cases[case_id] = updated
        return updated

    async def summarize(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        cases = [c for c in self._cases.values() if since is None or c.created_at >= since]
        return {
            "total": len(cases),
            "by_status": dict(Counter(c.status.value for c in cases)),
            "by_severity": dict(Counter(c.severity.value for c in cases)),
        }
