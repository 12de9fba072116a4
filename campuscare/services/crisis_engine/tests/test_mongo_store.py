"""Tests for the MongoDB escalation store.

The Motor collection is mocked; these tests check the queries and update
documents the store sends, and how driver errors surface.
"""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import DESCENDING
from pymongo.errors import AutoReconnect, ServerSelectionTimeoutError

from campuscare.shared.database import (
    ConnectionManager,
    DatabaseConfig,
    NotFoundError,
    PersistenceError,
)
from campuscare.shared.models import (
    ActionType,
    CaseAction,
    CaseStatus,
    EmergencyContact,
    MoodEvidence,
    Resolution,
    Severity,
)
from campuscare.services.crisis_engine.mongo_store import MongoEscalationStore
from campuscare.services.crisis_engine.store import CaseFilter, CaseMutation, build_case


def stored_document(**overrides):
    case = build_case({
        "subject_user_id": "stu_1",
        "source_type": "mood",
        "severity": "medium",
        "trigger_evidence": MoodEvidence(mood_id="mood_1"),
        "description": "Mood entry flagged: high intensity negative mood (severity: medium)",
    })
    document = case.to_document()
    document.update(overrides)
    return document


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def store(collection):
    manager = ConnectionManager(DatabaseConfig(uri="mongodb://localhost"))
    manager.get_collection = MagicMock(return_value=collection)
    return MongoEscalationStore(manager)


class TestCreate:

    @pytest.mark.asyncio
    async def test_inserts_document(self, store, collection):
        collection.insert_one = AsyncMock()

        case = await store.create({
            "subject_user_id": "stu_1",
            "source_type": "mood",
            "severity": "medium",
            "trigger_evidence": MoodEvidence(mood_id="mood_1"),
            "description": "flagged",
        })

        document = collection.insert_one.await_args.args[0]
        assert document["_id"] == case.id
        assert document["status"] == "open"
        assert document["trigger_evidence"]["mood_id"] == "mood_1"

    @pytest.mark.asyncio
    async def test_driver_error_is_persistence_error(self, store, collection):
        collection.insert_one = AsyncMock(side_effect=AutoReconnect("primary stepped down"))

        with pytest.raises(PersistenceError) as exc_info:
            await store.create({
                "subject_user_id": "stu_1",
                "source_type": "mood",
                "severity": "medium",
                "trigger_evidence": MoodEvidence(mood_id="mood_1"),
                "description": "flagged",
            })
        assert exc_info.value.retryable is True


class TestFind:

    @pytest.mark.asyncio
    async def test_round_trips_document(self, store, collection):
        document = stored_document()
        collection.find_one = AsyncMock(return_value=document)

        case = await store.find_by_id(document["_id"])

        assert case.id == document["_id"]
        assert case.severity == Severity.MEDIUM

    @pytest.mark.asyncio
    async def test_missing_returns_none(self, store, collection):
        collection.find_one = AsyncMock(return_value=None)

        assert await store.find_by_id("esc_missing") is None


class TestListCases:

    @pytest.mark.asyncio
    async def test_builds_query_sort_and_paging(self, store, collection):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[stored_document()])
        collection.find.return_value = cursor
        collection.count_documents = AsyncMock(return_value=11)

        cases, total = await store.list_cases(
            CaseFilter(status=CaseStatus.OPEN, severity=Severity.MEDIUM, assigned_to="c1"),
            page=2,
            page_size=10,
        )

        expected_query = {"status": "open", "severity": "medium", "assigned_to": "c1"}
        collection.find.assert_called_once_with(expected_query)
        cursor.sort.assert_called_once_with("created_at", DESCENDING)
        cursor.skip.assert_called_once_with(10)
        cursor.limit.assert_called_once_with(10)
        collection.count_documents.assert_awaited_once_with(expected_query)
        assert total == 11
        assert len(cases) == 1


class TestUpdate:

    @pytest.mark.asyncio
    async def test_sets_fields_and_pushes_action(self, store, collection):
        collection.find_one_and_update = AsyncMock(return_value=stored_document(priority=1))
        action = CaseAction(
            action_type=ActionType.CONTACTED,
            description="Called student",
            performed_by="counselor_1",
        )

        case = await store.update("esc_1", CaseMutation(priority=1, append_action=action))

        query, update_doc = collection.find_one_and_update.await_args.args
        assert query == {"_id": "esc_1"}
        assert update_doc["$set"]["priority"] == 1
        assert isinstance(update_doc["$set"]["updated_at"], datetime)
        assert update_doc["$push"]["actions"]["description"] == "Called student"
        assert case.priority == 1

    @pytest.mark.asyncio
    async def test_enum_values_are_stored_as_strings(self, store, collection):
        collection.find_one_and_update = AsyncMock(return_value=stored_document(status="in_progress"))

        await store.update("esc_1", CaseMutation(status=CaseStatus.IN_PROGRESS))

        _, update_doc = collection.find_one_and_update.await_args.args
        assert update_doc["$set"]["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_resolution_write_is_guarded(self, store, collection):
        resolution = Resolution(outcome="contacted student", resolved_by="counselor_1")
        collection.find_one_and_update = AsyncMock(
            return_value=stored_document(status="resolved", resolution=resolution.to_document())
        )

        case = await store.update("esc_1", CaseMutation(
            status=CaseStatus.RESOLVED,
            resolution=resolution,
        ))

        query, update_doc = collection.find_one_and_update.await_args.args
        assert query == {"_id": "esc_1", "resolution": None}
        assert update_doc["$set"]["resolution"]["outcome"] == "contacted student"
        assert case.resolution.resolved_by == "counselor_1"

    @pytest.mark.asyncio
    async def test_existing_resolution_is_kept(self, store, collection):
        resolution = Resolution(outcome="second outcome", resolved_by="admin_1")
        collection.find_one_and_update = AsyncMock(side_effect=[None, stored_document()])

        await store.update("esc_1", CaseMutation(status=CaseStatus.RESOLVED, resolution=resolution))

        retry_query, retry_doc = collection.find_one_and_update.await_args_list[1].args
        assert retry_query == {"_id": "esc_1"}
        assert "resolution" not in retry_doc["$set"]

    @pytest.mark.asyncio
    async def test_contact_is_pushed(self, store, collection):
        contact = EmergencyContact(name="Jordan Lee", relationship="parent", phone="555-0100")
        collection.find_one_and_update = AsyncMock(
            return_value=stored_document(emergency_contacts=[contact.to_document()])
        )

        case = await store.update("esc_1", CaseMutation(append_contact=contact))

        query, update_doc = collection.find_one_and_update.await_args.args
        assert query == {"_id": "esc_1"}
        assert update_doc["$push"]["emergency_contacts"]["name"] == "Jordan Lee"
        assert "actions" not in update_doc["$push"]
        assert case.emergency_contacts == (contact,)

    @pytest.mark.asyncio
    async def test_contact_marked_with_positional_set(self, store, collection):
        reached = EmergencyContact(
            name="Jordan Lee", phone="555-0100", contacted=True, contacted_at=datetime(2026, 10, 1),
        )
        collection.find_one_and_update = AsyncMock(
            return_value=stored_document(emergency_contacts=[reached.to_document()])
        )
        action = CaseAction(
            action_type=ActionType.EMERGENCY_CONTACTED,
            description="Emergency contact Jordan Lee contacted",
            performed_by="counselor_1",
        )

        case = await store.update(
            "esc_1", CaseMutation(contacted_index=0, append_action=action),
        )

        query, update_doc = collection.find_one_and_update.await_args.args
        assert query == {"_id": "esc_1", "emergency_contacts.0": {"$exists": True}}
        assert update_doc["$set"]["emergency_contacts.0.contacted"] is True
        assert update_doc["$set"]["emergency_contacts.0.contacted_at"] == update_doc["$set"]["updated_at"]
        assert update_doc["$push"]["actions"]["action_type"] == "emergency_contacted"
        assert case.emergency_contacts[0].contacted is True

    @pytest.mark.asyncio
    async def test_missing_case_raises_not_found(self, store, collection):
        collection.find_one_and_update = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await store.update("esc_missing", CaseMutation(priority=2))

    @pytest.mark.asyncio
    async def test_driver_error_is_persistence_error(self, store, collection):
        collection.find_one_and_update = AsyncMock(
            side_effect=ServerSelectionTimeoutError("no primary")
        )

        with pytest.raises(PersistenceError):
            await store.update("esc_1", CaseMutation(priority=2))


class TestSummarize:

    @pytest.mark.asyncio
    async def test_groups_by_status_and_severity(self, store, collection):
        status_cursor = MagicMock()
        status_cursor.to_list = AsyncMock(return_value=[{"_id": "open", "count": 3}])
        severity_cursor = MagicMock()
        severity_cursor.to_list = AsyncMock(return_value=[
            {"_id": "critical", "count": 1},
            {"_id": "low", "count": 2},
        ])
        collection.aggregate.side_effect = [status_cursor, severity_cursor]
        collection.count_documents = AsyncMock(return_value=3)
        since = datetime(2026, 1, 1)

        summary = await store.summarize(since)

        pipeline = collection.aggregate.call_args_list[0].args[0]
        assert pipeline[0] == {"$match": {"created_at": {"$gte": since}}}
        assert summary == {
            "total": 3,
            "by_status": {"open": 3},
            "by_severity": {"critical": 1, "low": 2},
        }


class TestEnsureIndexes:

    @pytest.mark.asyncio
    async def test_creates_triage_indexes(self, store, collection):
        collection.create_index = AsyncMock()

        await store.ensure_indexes()

        assert collection.create_index.await_count == 4
