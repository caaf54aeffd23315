"""
Submission repository: the persistent store behind submissions.

Two implementations share one contract. InMemorySubmissionRepository backs
mock mode and the tests; MongoSubmissionRepository stores documents in the
"<APP_ID>.submission" collection. Timestamps are assigned here, never by
the client.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
import database
from errors import NotFound, StoreUnavailable, Unauthorized
from schemas import StatusPatch, SubmissionRecord
from subscriptions import Subscription, SubscriptionHub

logger = logging.getLogger(__name__)

# Never replaced by an overwrite
IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "department", "status", "last_modified"})

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def newest_first(records: Iterable[SubmissionRecord]) -> List[SubmissionRecord]:
    """Order by last_modified descending, id breaking ties so output is stable."""
    def key(record):
        stamp = record.last_modified or _EPOCH
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return stamp, record.id
    return sorted(records, key=key, reverse=True)


def _mutable_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}


class SubmissionRepository(ABC):

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.hub = SubscriptionHub()
        self._clock = clock or database.utcnow

    @abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> str:
        """Persist a new submission and return its id."""

    @abstractmethod
    async def get(self, submission_id: str) -> SubmissionRecord:
        """Fetch one submission or raise NotFound."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> List[SubmissionRecord]:
        pass

    @abstractmethod
    async def list_by_department(self, department: str) -> List[SubmissionRecord]:
        pass

    @abstractmethod
    async def overwrite(self, submission_id: str, fields: Mapping[str, Any]) -> SubmissionRecord:
        """Replace the mutable fields in place, keeping the id."""

    @abstractmethod
    async def update_status(self, patch: StatusPatch, department: Optional[str] = None) -> SubmissionRecord:
        """Set only the status; department, when given, must match the record's."""

    @abstractmethod
    async def ping(self) -> bool:
        pass

    def subscribe_by_department(self, department: str) -> Subscription:
        return Subscription(
            self.hub,
            f"department:{department}",
            lambda record: record.department == department,
            lambda: self.list_by_department(department),
        )

    def subscribe_by_owner(self, owner_id: str) -> Subscription:
        return Subscription(
            self.hub,
            f"owner:{owner_id}",
            lambda record: record.owner_id == owner_id,
            lambda: self.list_by_owner(owner_id),
        )

    @staticmethod
    def _check_department(record: SubmissionRecord, department: Optional[str]):
        if department is not None and department != record.department:
            raise Unauthorized(
                "Submission belongs to another department",
                submission_id=record.id,
            )


class InMemorySubmissionRepository(SubmissionRepository):
    """Dictionary-backed store. Set ``available = False`` to simulate an outage."""

    def __init__(self, records: Iterable[SubmissionRecord] = (), clock=None):
        super().__init__(clock)
        self._records: Dict[str, SubmissionRecord] = {r.id: r.model_copy() for r in records}
        self.available = True

    def _check(self):
        if not self.available:
            raise StoreUnavailable()

    def _find(self, submission_id: str) -> SubmissionRecord:
        record = self._records.get(submission_id)
        if record is None:
            raise NotFound(submission_id)
        return record

    async def create(self, fields):
        self._check()
        record = SubmissionRecord.model_validate({
            **fields,
            "id": str(uuid.uuid4()),
            "status": fields.get("status") or "pending",
            "last_modified": self._clock(),
        })
        self._records[record.id] = record
        logger.info(f"Created submission {record.id} for owner {record.owner_id}")
        await self.hub.publish(record)
        return record.id

    async def get(self, submission_id):
        self._check()
        return self._find(submission_id).model_copy()

    async def list_by_owner(self, owner_id):
        self._check()
        return newest_first(r.model_copy() for r in self._records.values() if r.owner_id == owner_id)

    async def list_by_department(self, department):
        self._check()
        return newest_first(r.model_copy() for r in self._records.values() if r.department == department)

    async def overwrite(self, submission_id, fields):
        self._check()
        existing = self._find(submission_id)
        updated = existing.model_copy(update={**_mutable_fields(fields), "last_modified": self._clock()})
        self._records[submission_id] = updated
        logger.info(f"Overwrote submission {submission_id}")
        await self.hub.publish(updated)
        return updated.model_copy()

    async def update_status(self, patch, department=None):
        self._check()
        existing = self._find(patch.id)
        self._check_department(existing, department)
        updated = existing.model_copy(update={"status": patch.status, "last_modified": self._clock()})
        self._records[patch.id] = updated
        await self.hub.publish(updated)
        return updated.model_copy()

    async def ping(self):
        return self.available


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}")
        raise StoreUnavailable(f"Submission store unavailable during {operation}") from e


class MongoSubmissionRepository(SubmissionRepository):
    """Submissions as MongoDB documents; ids are ObjectId strings."""

    def __init__(self, db: Optional[Database] = None, collection_name: Optional[str] = None, clock=None):
        super().__init__(clock)
        self._db = db if db is not None else database.db
        self.collection_name = collection_name or config.SUBMISSION_COLLECTION

    def _require_db(self):
        if self._db is None:
            raise StoreUnavailable("Database not available")

    @property
    def collection(self):
        self._require_db()
        return self._db[self.collection_name]

    def _object_id(self, submission_id: str):
        oid = database.to_object_id(submission_id)
        if oid is None:
            raise NotFound(submission_id)
        return oid

    def _list(self, filter_dict: Dict[str, Any]) -> List[SubmissionRecord]:
        self._require_db()
        with _store_errors("query"):
            docs = database.get_documents(self.collection_name, filter_dict, database=self._db)
        return newest_first(SubmissionRecord.from_document(d) for d in docs)

    async def create(self, fields):
        doc = {
            **fields,
            "status": fields.get("status") or "pending",
            "last_modified": self._clock(),
        }
        doc.pop("id", None)
        self._require_db()
        with _store_errors("create"):
            inserted_id = database.create_document(self.collection_name, doc, database=self._db)
        logger.info(f"Created submission {inserted_id} for owner {doc.get('owner_id')}")
        await self.hub.publish(SubmissionRecord.from_document({**doc, "_id": inserted_id}))
        return inserted_id

    async def get(self, submission_id):
        oid = self._object_id(submission_id)
        with _store_errors("get"):
            doc = self.collection.find_one({"_id": oid})
        if not doc:
            raise NotFound(submission_id)
        return SubmissionRecord.from_document(doc)

    async def list_by_owner(self, owner_id):
        return self._list({"owner_id": owner_id})

    async def list_by_department(self, department):
        return self._list({"department": department})

    async def overwrite(self, submission_id, fields):
        oid = self._object_id(submission_id)
        now = self._clock()
        changes = {**_mutable_fields(fields), "last_modified": now, "updated_at": now}
        with _store_errors("overwrite"):
            result = self.collection.update_one({"_id": oid}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFound(submission_id)
        logger.info(f"Overwrote submission {submission_id}")
        updated = await self.get(submission_id)
        await self.hub.publish(updated)
        return updated

    async def update_status(self, patch, department=None):
        existing = await self.get(patch.id)
        self._check_department(existing, department)
        now = self._clock()
        with _store_errors("update_status"):
            result = self.collection.update_one(
                {"_id": self._object_id(patch.id)},
                {"$set": {"status": patch.status, "last_modified": now, "updated_at": now}},
            )
        if result.matched_count == 0:
            raise NotFound(patch.id)
        updated = existing.model_copy(update={"status": patch.status, "last_modified": now})
        await self.hub.publish(updated)
        return updated

    async def ping(self):
        if self._db is None:
            return False
        try:
            self._db.command("ping")
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
        return True


def build_repository() -> SubmissionRepository:
    """Repository selected by REPOSITORY_BACKEND."""
    if config.REPOSITORY_BACKEND == "mongo":
        return MongoSubmissionRepository()
    return InMemorySubmissionRepository()
