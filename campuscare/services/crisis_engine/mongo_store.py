"""MongoDB-backed escalation case store.

Each update is a single find_one_and_update, so scalar changes, the
action append ($push) and the resolution write land together or not at
all. Concurrent appends to the same case are serialized by the server.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from campuscare.shared.database import BaseRepository, ConnectionManager, NotFoundError
from campuscare.shared.models import EscalationCase
from .store import (
    CaseFilter,
    CaseMutation,
    EscalationStore,
    build_case,
    check_page,
)

logger = logging.getLogger(__name__)

COLLECTION_NAME = "escalations"


def _to_document_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class MongoEscalationStore(BaseRepository[EscalationCase], EscalationStore):
    """Escalation store over the `escalations` collection."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        collection_name: str = COLLECTION_NAME,
    ):
        super().__init__(connection_manager, collection_name)
        self._indexes_ready = False

    def _document_to_entity(self, document: Dict[str, Any]) -> EscalationCase:
        return EscalationCase.from_document(document)

    def _entity_to_document(self, entity: EscalationCase) -> Dict[str, Any]:
        return entity.to_document()

    async def ensure_indexes(self) -> None:
        """Create the indexes used by triage queries."""
        try:
            await self.collection.create_index([("subject_user_id", ASCENDING), ("status", ASCENDING)])
            await self.collection.create_index([("severity", ASCENDING), ("status", ASCENDING)])
            await self.collection.create_index([("assigned_to", ASCENDING), ("status", ASCENDING)])
            await self.collection.create_index([("created_at", DESCENDING)])
        except PyMongoError as e:
            raise self._wrap_error("create_index", e)

        self._indexes_ready = True
        logger.info("ESCALATION_INDEXES_ENSURED", extra={"collection_name": self.collection_name})

    async def create(self, fields: Mapping[str, Any]) -> EscalationCase:
        case = build_case(fields)
        await self._insert_document(case)

        logger.info(
            "ESCALATION_CASE_STORED",
            extra={"case_id": case.id, "severity": case.severity.value}
        )
        return case

    async def find_by_id(self, case_id: str) -> Optional[EscalationCase]:
        return await self._find_document(case_id)

    @staticmethod
    def _filter_query(case_filter: Optional[CaseFilter]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if case_filter is None:
            return query
        if case_filter.status is not None:
            query["status"] = case_filter.status.value
        if case_filter.severity is not None:
            query["severity"] = case_filter.severity.value
        if case_filter.assigned_to is not None:
            query["assigned_to"] = case_filter.assigned_to
        return query

    async def list_cases(
        self,
        case_filter: Optional[CaseFilter] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[EscalationCase], int]:
        check_page(page, page_size)
        query = self._filter_query(case_filter)

        try:
            cursor = (
                self.collection.find(query)
                .sort("created_at", DESCENDING)
                .skip((page - 1) * page_size)
                .limit(page_size)
            )
            documents = await cursor.to_list(length=page_size)
        except PyMongoError as e:
            raise self._wrap_error("list", e)

        total = await self._count_documents(query)
        return [self._document_to_entity(doc) for doc in documents], total

    async def update(self, case_id: str, mutation: CaseMutation) -> EscalationCase:
        set_fields = {
            name: _to_document_value(value)
            for name, value in mutation.scalar_changes().items()
        }
        now = datetime.utcnow()
        set_fields["updated_at"] = now

        query: Dict[str, Any] = {"_id": case_id}
        if mutation.contacted_index is not None:
            prefix = f"emergency_contacts.{mutation.contacted_index}"
            query[prefix] = {"$exists": True}
            set_fields[f"{prefix}.contacted"] = True
            set_fields[f"{prefix}.contacted_at"] = now

        push_fields: Dict[str, Any] = {}
        if mutation.append_action is not None:
            push_fields["actions"] = mutation.append_action.to_document()
        if mutation.append_contact is not None:
            push_fields["emergency_contacts"] = mutation.append_contact.to_document()

        update_doc: Dict[str, Any] = {"$set": set_fields}
        if push_fields:
            update_doc["$push"] = push_fields

        try:
            document = None
            if mutation.resolution is not None:
                # Only the first resolution is kept; the guard on
                # resolution=None makes the write conditional.
                guarded = dict(update_doc)
                guarded["$set"] = dict(set_fields, resolution=mutation.resolution.to_document())
                document = await self.collection.find_one_and_update(
                    dict(query, resolution=None),
                    guarded,
                    return_document=ReturnDocument.AFTER,
                )
            if document is None:
                document = await self.collection.find_one_and_update(
                    query,
                    update_doc,
                    return_document=ReturnDocument.AFTER,
                )
        except PyMongoError as e:
            raise self._wrap_error("update", e, case_id)

        if document is None:
            raise NotFoundError(f"Escalation case {case_id} not found")
        return self._document_to_entity(document)

    async def summarize(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        match = {"created_at": {"$gte": since}} if since else {}
        try:
            by_status = await self._group_counts(match, "$status")
            by_severity = await self._group_counts(match, "$severity")
        except PyMongoError as e:
            raise self._wrap_error("summarize", e)

        return {
            "total": await self._count_documents(match),
            "by_status": by_status,
            "by_severity": by_severity,
        }

    async def _group_counts(self, match: Dict[str, Any], key: str) -> Dict[str, int]:
        cursor = self.collection.aggregate([
            {"$match": match},
            {"$group": {"_id": key, "count": {"$sum": 1}}},
        ])
        rows = await cursor.to_list(length=None)
        return {row["_id"]: row["count"] for row in rows}

    async def health_check(self) -> Dict[str, Any]:
        """Ping the server; the first healthy check also ensures indexes."""
        self.connection_manager.initialize()
        result = await self.connection_manager.health_check()
        if result.get("healthy") and not self._indexes_ready:
            await self.ensure_indexes()
        return result
