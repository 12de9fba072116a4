"""Triage service - the reviewer-facing operations on escalation cases.

Every operation checks the caller's role first, then reads the current
case so a missing id fails with NotFoundError before any write.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from campuscare.shared.database import NotFoundError
from campuscare.shared.models import (
    ActionType,
    CaseAction,
    CaseStatus,
    EmergencyContact,
    EscalationCase,
    Resolution,
    Severity,
    ValidationError,
    clean_text,
    parse_enum,
    validate_priority,
)
from .auth import Identity, require_reviewer
from .store import CaseFilter, CaseMutation, EscalationStore

logger = logging.getLogger(__name__)


class TriageService:
    """Case triage for counselors and admins."""

    def __init__(
        self,
        store: EscalationStore,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        self.store = store
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def _require_case(self, case_id: str) -> EscalationCase:
        case = await self.store.find_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Escalation case {case_id} not found")
        return case

    async def list_cases(
        self,
        identity: Identity,
        status: Any = None,
        severity: Any = None,
        assigned_to: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Tuple[List[EscalationCase], int]:
        """List cases newest first, optionally filtered.

        Returns:
            (cases on the requested page, total matching cases)
        """
        require_reviewer(identity)

        if page_size is None:
            page_size = self.default_page_size
        if (
            isinstance(page_size, bool)
            or not isinstance(page_size, int)
            or not 1 <= page_size <= self.max_page_size
        ):
            raise ValidationError(
                f"Page size must be between 1 and {self.max_page_size}, got {page_size!r}"
            )

        case_filter = CaseFilter(
            status=parse_enum(CaseStatus, status, "status") if status else None,
            severity=parse_enum(Severity, severity, "severity") if severity else None,
            assigned_to=assigned_to or None,
        )
        return await self.store.list_cases(case_filter, page=page, page_size=page_size)

    async def get_case(self, identity: Identity, case_id: str) -> EscalationCase:
        require_reviewer(identity)
        return await self._require_case(case_id)

    async def assign(
        self,
        identity: Identity,
        case_id: str,
        reviewer_id: Optional[str],
    ) -> EscalationCase:
        """Assign the case to a reviewer, or clear the assignee with None."""
        require_reviewer(identity)
        reviewer_id = clean_text(reviewer_id, "assigned_to")
        await self._require_case(case_id)

        if reviewer_id:
            mutation = CaseMutation(assigned_to=reviewer_id)
        else:
            mutation = CaseMutation(clear_assignee=True)
        case = await self.store.update(case_id, mutation)

        logger.info(
            "ESCALATION_CASE_ASSIGNED",
            extra={
                "case_id": case_id,
                "assigned_to": case.assigned_to,
                "performed_by": identity.user_id,
            }
        )
        return case

    async def record_action(
        self,
        identity: Identity,
        case_id: str,
        action_type: Any,
        description: str,
        notes: Optional[str] = None,
    ) -> EscalationCase:
        """Append an entry to the case's action log.

        status_change entries are written only by set_status, alongside
        the transition they describe.
        """
        require_reviewer(identity)
        parsed_type = parse_enum(ActionType, action_type, "action_type")
        if parsed_type == ActionType.STATUS_CHANGE:
            raise ValidationError("status_change actions are recorded by status updates")
        description = clean_text(description, "description", required=True)
        notes = clean_text(notes, "notes")
        await self._require_case(case_id)

        action = CaseAction(
            action_type=parsed_type,
            description=description,
            performed_by=identity.user_id,
            notes=notes,
        )
        case = await self.store.update(case_id, CaseMutation(append_action=action))

        logger.info(
            "ESCALATION_ACTION_RECORDED",
            extra={
                "case_id": case_id,
                "action_type": parsed_type.value,
                "performed_by": identity.user_id,
                "action_count": len(case.actions),
            }
        )
        return case

    async def add_emergency_contact(
        self,
        identity: Identity,
        case_id: str,
        name: Any,
        relationship: Any = None,
        phone: Any = None,
        email: Any = None,
    ) -> EscalationCase:
        """Attach someone to reach on the student's behalf."""
        require_reviewer(identity)
        contact = EmergencyContact(
            name=clean_text(name, "name", required=True),
            relationship=clean_text(relationship, "relationship"),
            phone=clean_text(phone, "phone"),
            email=clean_text(email, "email"),
        )
        await self._require_case(case_id)

        case = await self.store.update(case_id, CaseMutation(append_contact=contact))

        logger.info(
            "ESCALATION_CONTACT_ADDED",
            extra={
                "case_id": case_id,
                "contact_count": len(case.emergency_contacts),
                "performed_by": identity.user_id,
            }
        )
        return case

    async def mark_contact_contacted(
        self,
        identity: Identity,
        case_id: str,
        contact_index: Any,
        notes: Any = None,
    ) -> EscalationCase:
        """Mark one emergency contact as reached.

        The contact flag and the emergency_contacted action are written in
        the same update.
        """
        require_reviewer(identity)
        notes = clean_text(notes, "notes")
        current = await self._require_case(case_id)

        if (
            isinstance(contact_index, bool)
            or not isinstance(contact_index, int)
            or not 0 <= contact_index < len(current.emergency_contacts)
        ):
            raise ValidationError(f"Case {case_id} has no emergency contact {contact_index!r}")
        contact = current.emergency_contacts[contact_index]

        mutation = CaseMutation(
            contacted_index=contact_index,
            append_action=CaseAction(
                action_type=ActionType.EMERGENCY_CONTACTED,
                description=f"Emergency contact {contact.name} contacted",
                performed_by=identity.user_id,
                notes=notes,
            ),
        )
        case = await self.store.update(case_id, mutation)

        logger.info(
            "ESCALATION_CONTACT_REACHED",
            extra={
                "case_id": case_id,
                "contact_index": contact_index,
                "performed_by": identity.user_id,
            }
        )
        return case

    async def set_status(
        self,
        identity: Identity,
        case_id: str,
        status: Any,
        notes: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> EscalationCase:
        """Move a case to a new status.

        Resolving requires an outcome; the resolution is written together
        with the status change. Every transition appends a status_change
        action naming the old and new status.
        """
        require_reviewer(identity)
        new_status = parse_enum(CaseStatus, status, "status")
        notes = clean_text(notes, "notes")
        outcome = clean_text(outcome, "outcome")

        resolution = None
        if new_status == CaseStatus.RESOLVED:
            if outcome is None:
                raise ValidationError("Resolving a case requires an outcome")
            resolution = Resolution(
                outcome=outcome,
                resolved_by=identity.user_id,
                notes=notes,
            )

        current = await self._require_case(case_id)

        description = f"Status changed from {current.status.value} to {new_status.value}"
        if resolution is not None:
            description = f"{description}: {resolution.outcome}"

        mutation = CaseMutation(
            status=new_status,
            append_action=CaseAction(
                action_type=ActionType.STATUS_CHANGE,
                description=description,
                performed_by=identity.user_id,
                notes=notes,
            ),
            resolution=resolution,
        )
        case = await self.store.update(case_id, mutation)

        logger.info(
            "ESCALATION_STATUS_CHANGED",
            extra={
                "case_id": case_id,
                "from_status": current.status.value,
                "to_status": new_status.value,
                "performed_by": identity.user_id,
            }
        )
        return case

    async def set_priority(self, identity: Identity, case_id: str, priority: Any) -> EscalationCase:
        require_reviewer(identity)
        validate_priority(priority)
        await self._require_case(case_id)
        return await self.store.update(case_id, CaseMutation(priority=priority))

    async def set_severity(self, identity: Identity, case_id: str, severity: Any) -> EscalationCase:
        """Re-grade a case after human review."""
        require_reviewer(identity)
        new_severity = parse_enum(Severity, severity, "severity")
        current = await self._require_case(case_id)

        case = await self.store.update(case_id, CaseMutation(severity=new_severity))

        logger.info(
            "ESCALATION_SEVERITY_CHANGED",
            extra={
                "case_id": case_id,
                "from_severity": current.severity.value,
                "to_severity": new_severity.value,
                "performed_by": identity.user_id,
            }
        )
        return case

    async def schedule_follow_up(
        self,
        identity: Identity,
        case_id: str,
        follow_up_date: datetime,
        notes: Optional[str] = None,
    ) -> EscalationCase:
        """Mark the case for follow-up and log a follow_up action."""
        require_reviewer(identity)
        if not isinstance(follow_up_date, datetime):
            raise ValidationError(f"follow_up_date must be a datetime, got {follow_up_date!r}")
        notes = clean_text(notes, "notes")
        await self._require_case(case_id)

        mutation = CaseMutation(
            follow_up_required=True,
            follow_up_date=follow_up_date,
            append_action=CaseAction(
                action_type=ActionType.FOLLOW_UP,
                description=f"Follow-up scheduled for {follow_up_date.isoformat()}",
                performed_by=identity.user_id,
                notes=notes,
            ),
        )
        return await self.store.update(case_id, mutation)

    async def summarize(self, identity: Identity, days: int = 30) -> Dict[str, Any]:
        """Case totals by status and severity over the trailing window."""
        require_reviewer(identity)
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError(f"days must be a positive integer, got {days!r}")

        since = datetime.utcnow() - timedelta(days=days)
        summary = await self.store.summarize(since)
        summary["days"] = days
        return summary
