"""Tests for the triage service used by counselors and admins."""
from datetime import datetime

import pytest
import pytest_asyncio

from campuscare.shared.database import NotFoundError
from campuscare.shared.models import (
    ActionType,
    CaseStatus,
    ChatEvidence,
    ManualEvidence,
    Severity,
    ValidationError,
)
from campuscare.shared.utils import configure_pii_salt
from campuscare.services.crisis_engine.auth import AuthorizationError, Identity, Role
from campuscare.services.crisis_engine.store import InMemoryEscalationStore
from campuscare.services.crisis_engine.triage import TriageService

COUNSELOR = Identity(user_id="counselor_1", role=Role.COUNSELOR)
ADMIN = Identity(user_id="admin_1", role=Role.ADMIN)
STUDENT = Identity(user_id="stu_1", role=Role.STUDENT)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def store():
    return InMemoryEscalationStore()


@pytest.fixture
def triage(store):
    return TriageService(store, default_page_size=10, max_page_size=50)


@pytest_asyncio.fixture
async def open_case(store):
    return await store.create({
        "subject_user_id": "stu_1",
        "source_type": "chat",
        "severity": "high",
        "trigger_evidence": ChatEvidence(raw_text_excerpt="I feel worthless"),
        "description": "Chat message flagged: emergency keywords detected (severity: critical)",
    })


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_student_cannot_list(self, triage):
        with pytest.raises(AuthorizationError):
            await triage.list_cases(STUDENT)

    @pytest.mark.asyncio
    async def test_student_cannot_change_status(self, triage, open_case):
        with pytest.raises(AuthorizationError):
            await triage.set_status(STUDENT, open_case.id, "resolved", outcome="x")


class TestNotFound:

    @pytest.mark.asyncio
    async def test_assign_missing_case(self, triage):
        with pytest.raises(NotFoundError):
            await triage.assign(COUNSELOR, "esc_doesnotexist", "counselor_1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda t: t.get_case(COUNSELOR, "esc_none"),
        lambda t: t.record_action(COUNSELOR, "esc_none", "contacted", "Called"),
        lambda t: t.set_status(COUNSELOR, "esc_none", "in_progress"),
        lambda t: t.set_priority(COUNSELOR, "esc_none", 2),
        lambda t: t.set_severity(COUNSELOR, "esc_none", "low"),
        lambda t: t.schedule_follow_up(COUNSELOR, "esc_none", datetime(2026, 11, 1)),
        lambda t: t.add_emergency_contact(COUNSELOR, "esc_none", "Jordan Lee", phone="555-0100"),
        lambda t: t.mark_contact_contacted(COUNSELOR, "esc_none", 0),
    ])
    async def test_every_operation_checks_existence(self, triage, call):
        with pytest.raises(NotFoundError):
            await call(triage)


class TestAssign:

    @pytest.mark.asyncio
    async def test_assign_and_clear(self, triage, open_case):
        assigned = await triage.assign(ADMIN, open_case.id, "counselor_2")
        cleared = await triage.assign(ADMIN, open_case.id, None)

        assert assigned.assigned_to == "counselor_2"
        assert cleared.assigned_to is None


class TestRecordAction:

    @pytest.mark.asyncio
    async def test_appends_with_caller_as_performer(self, triage, open_case):
        case = await triage.record_action(
            COUNSELOR, open_case.id, "contacted", "Called the student", notes="No answer",
        )

        action = case.actions[-1]
        assert action.action_type == ActionType.CONTACTED
        assert action.performed_by == "counselor_1"
        assert action.notes == "No answer"

    @pytest.mark.asyncio
    async def test_unknown_action_type(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.record_action(COUNSELOR, open_case.id, "teleported", "??")

    @pytest.mark.asyncio
    async def test_empty_description(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.record_action(COUNSELOR, open_case.id, "contacted", " ")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("description", [5, ["Called"], {"text": "Called"}, True])
    async def test_non_string_description(self, triage, open_case, description):
        with pytest.raises(ValidationError, match="description must be a string"):
            await triage.record_action(COUNSELOR, open_case.id, "contacted", description)

    @pytest.mark.asyncio
    async def test_non_string_notes(self, triage, open_case):
        with pytest.raises(ValidationError, match="notes must be a string"):
            await triage.record_action(
                COUNSELOR, open_case.id, "contacted", "Called", notes=["x"],
            )

    @pytest.mark.asyncio
    async def test_status_change_only_through_set_status(self, triage, open_case, store):
        with pytest.raises(ValidationError):
            await triage.record_action(
                COUNSELOR, open_case.id, "status_change", "Status changed from open to resolved",
            )

        unchanged = await store.find_by_id(open_case.id)
        assert unchanged.status == CaseStatus.OPEN
        assert unchanged.actions == ()


class TestSetStatus:

    @pytest.mark.asyncio
    async def test_resolve_records_resolution_and_action(self, triage, open_case):
        case = await triage.set_status(
            COUNSELOR, open_case.id, "resolved",
            notes="handled", outcome="contacted student",
        )

        assert case.status == CaseStatus.RESOLVED
        assert case.resolution.resolved_by == "counselor_1"
        assert case.resolution.outcome == "contacted student"
        assert case.resolution.notes == "handled"
        assert case.resolution.resolved_at is not None
        transition = case.actions[-1]
        assert transition.action_type == ActionType.STATUS_CHANGE
        assert "open" in transition.description
        assert "resolved" in transition.description

    @pytest.mark.asyncio
    async def test_resolve_without_outcome_rejected(self, triage, open_case, store):
        with pytest.raises(ValidationError):
            await triage.set_status(COUNSELOR, open_case.id, "resolved", notes="handled")

        unchanged = await store.find_by_id(open_case.id)
        assert unchanged.status == CaseStatus.OPEN
        assert unchanged.actions == ()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [5, 1.5, ["done"], {"outcome": "done"}])
    async def test_non_string_outcome_rejected(self, triage, open_case, store, outcome):
        with pytest.raises(ValidationError, match="outcome must be a string"):
            await triage.set_status(COUNSELOR, open_case.id, "resolved", outcome=outcome)

        unchanged = await store.find_by_id(open_case.id)
        assert unchanged.resolution is None

    @pytest.mark.asyncio
    async def test_non_string_notes_rejected(self, triage, open_case):
        with pytest.raises(ValidationError, match="notes must be a string"):
            await triage.set_status(COUNSELOR, open_case.id, "in_progress", notes=7)

    @pytest.mark.asyncio
    async def test_every_transition_appends_action(self, triage, open_case):
        await triage.set_status(COUNSELOR, open_case.id, "in_progress")
        case = await triage.set_status(COUNSELOR, open_case.id, "false_positive")

        assert [a.description for a in case.actions] == [
            "Status changed from open to in_progress",
            "Status changed from in_progress to false_positive",
        ]
        assert case.resolution is None

    @pytest.mark.asyncio
    async def test_first_resolution_is_kept(self, triage, open_case):
        await triage.set_status(COUNSELOR, open_case.id, "resolved", outcome="first")
        case = await triage.set_status(ADMIN, open_case.id, "resolved", outcome="second")

        assert case.resolution.outcome == "first"
        assert case.resolution.resolved_by == "counselor_1"
        assert "second" in case.actions[-1].description

    @pytest.mark.asyncio
    async def test_unknown_status(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.set_status(COUNSELOR, open_case.id, "closed")


class TestPriorityAndSeverity:

    @pytest.mark.asyncio
    async def test_set_priority(self, triage, open_case):
        case = await triage.set_priority(COUNSELOR, open_case.id, 1)
        assert case.priority == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("priority", [0, 6, "2", None])
    async def test_invalid_priority(self, triage, open_case, priority):
        with pytest.raises(ValidationError):
            await triage.set_priority(COUNSELOR, open_case.id, priority)

    @pytest.mark.asyncio
    async def test_set_severity(self, triage, open_case):
        case = await triage.set_severity(ADMIN, open_case.id, "critical")
        assert case.severity == Severity.CRITICAL


class TestEmergencyContacts:

    @pytest.mark.asyncio
    async def test_add_contact(self, triage, open_case):
        case = await triage.add_emergency_contact(
            COUNSELOR, open_case.id, " Jordan Lee ", relationship="parent", phone="555-0100",
        )

        assert len(case.emergency_contacts) == 1
        contact = case.emergency_contacts[0]
        assert contact.name == "Jordan Lee"
        assert contact.relationship == "parent"
        assert contact.contacted is False

    @pytest.mark.asyncio
    async def test_contact_needs_phone_or_email(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.add_emergency_contact(COUNSELOR, open_case.id, "Jordan Lee")

    @pytest.mark.asyncio
    async def test_contact_rejects_non_string_fields(self, triage, open_case):
        with pytest.raises(ValidationError, match="phone must be a string"):
            await triage.add_emergency_contact(
                COUNSELOR, open_case.id, "Jordan Lee", phone=5550100,
            )

    @pytest.mark.asyncio
    async def test_student_cannot_add_contact(self, triage, open_case):
        with pytest.raises(AuthorizationError):
            await triage.add_emergency_contact(
                STUDENT, open_case.id, "Jordan Lee", phone="555-0100",
            )

    @pytest.mark.asyncio
    async def test_mark_contacted_logs_action(self, triage, open_case):
        await triage.add_emergency_contact(
            COUNSELOR, open_case.id, "Jordan Lee", phone="555-0100",
        )
        await triage.add_emergency_contact(
            COUNSELOR, open_case.id, "Sam Lee", email="sam@example.edu",
        )

        case = await triage.mark_contact_contacted(
            ADMIN, open_case.id, 1, notes="Left voicemail",
        )

        assert case.emergency_contacts[0].contacted is False
        assert case.emergency_contacts[1].contacted is True
        assert case.emergency_contacts[1].contacted_at is not None
        action = case.actions[-1]
        assert action.action_type == ActionType.EMERGENCY_CONTACTED
        assert action.description == "Emergency contact Sam Lee contacted"
        assert action.performed_by == "admin_1"
        assert action.notes == "Left voicemail"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [1, -1, "0", True])
    async def test_mark_contacted_rejects_bad_index(self, triage, open_case, store, index):
        await triage.add_emergency_contact(
            COUNSELOR, open_case.id, "Jordan Lee", phone="555-0100",
        )

        with pytest.raises(ValidationError):
            await triage.mark_contact_contacted(COUNSELOR, open_case.id, index)

        unchanged = await store.find_by_id(open_case.id)
        assert unchanged.actions == ()
        assert unchanged.emergency_contacts[0].contacted is False


class TestFollowUp:

    @pytest.mark.asyncio
    async def test_schedule_follow_up(self, triage, open_case):
        when = datetime(2026, 11, 2, 15, 0)

        case = await triage.schedule_follow_up(COUNSELOR, open_case.id, when, notes="check in")

        assert case.follow_up_required is True
        assert case.follow_up_date == when
        assert case.actions[-1].action_type == ActionType.FOLLOW_UP

    @pytest.mark.asyncio
    async def test_rejects_non_datetime(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.schedule_follow_up(COUNSELOR, open_case.id, "tomorrow")

    @pytest.mark.asyncio
    async def test_rejects_non_string_notes(self, triage, open_case):
        with pytest.raises(ValidationError):
            await triage.schedule_follow_up(
                COUNSELOR, open_case.id, datetime(2026, 11, 2), notes={"text": "x"},
            )


class TestListAndSummarize:

    @pytest.mark.asyncio
    async def test_list_with_filters(self, triage, open_case):
        cases, total = await triage.list_cases(COUNSELOR, status="open", severity="high")

        assert total == 1
        assert cases[0].id == open_case.id

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_filter_value(self, triage):
        with pytest.raises(ValidationError):
            await triage.list_cases(COUNSELOR, severity="extreme")

    @pytest.mark.asyncio
    async def test_list_rejects_oversized_page(self, triage):
        with pytest.raises(ValidationError):
            await triage.list_cases(COUNSELOR, page_size=500)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [0, -5])
    async def test_list_rejects_non_positive_page_size(self, triage, page_size):
        with pytest.raises(ValidationError):
            await triage.list_cases(COUNSELOR, page_size=page_size)

    @pytest.mark.asyncio
    async def test_list_uses_default_page_size(self, triage, store):
        for i in range(12):
            await store.create({
                "subject_user_id": f"stu_{i}",
                "source_type": "manual",
                "severity": "low",
                "trigger_evidence": ManualEvidence(reported_by="counselor_1"),
                "description": "Manual report",
            })

        cases, total = await triage.list_cases(COUNSELOR)

        assert total == 12
        assert len(cases) == 10

    @pytest.mark.asyncio
    async def test_summarize(self, triage, open_case):
        summary = await triage.summarize(ADMIN, days=7)

        assert summary["days"] == 7
        assert summary["total"] == 1
        assert summary["by_severity"] == {"high": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, -1, "7"])
    async def test_summarize_rejects_bad_window(self, triage, days):
        with pytest.raises(ValidationError):
            await triage.summarize(ADMIN, days=days)
