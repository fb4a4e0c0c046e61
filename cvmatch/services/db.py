import re
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from cvmatch.config import Settings
from cvmatch.models.models import CandidateRecord
from cvmatch.models.schemas import ChatTurn, JobPosting, MatchRecord
from cvmatch.utils.exceptions import DatabaseError
from cvmatch.utils.logging_config import get_logger
from cvmatch.utils.utils import utcnow

logger = get_logger(__name__)

CANDIDATES = "candidates"
JOBS = "jobs"
MATCHES = "matches"
CHAT_TURNS = "chat_turns"

# (collection, keys, unique)
INDEXES = [
    (CANDIDATES, [("candidate_id", ASCENDING)], True),
    (CANDIDATES, [("extraction_method", ASCENDING)], False),
    (CANDIDATES, [("extracted_at", DESCENDING)], False),
    (CANDIDATES, [("personal_info.name", ASCENDING)], False),
    (JOBS, [("job_id", ASCENDING)], True),
    (JOBS, [("active", ASCENDING)], False),
    (JOBS, [("created_at", DESCENDING)], False),
    (MATCHES, [("candidate_id", ASCENDING), ("job_id", ASCENDING)], True),
    (MATCHES, [("job_id", ASCENDING), ("score", DESCENDING)], False),
    (CHAT_TURNS, [("turn_id", ASCENDING)], True),
    (CHAT_TURNS, [("candidate_id", ASCENDING), ("created_at", DESCENDING)], False),
]


def get_database(settings: Settings):
    logger.info(f"Initializing MongoDB connection to database: {settings.database.db_name}")
    try:
        client = motor.motor_asyncio.AsyncIOMotorClient(settings.database.uri, tz_aware=False)
        db = client[settings.database.db_name]
        logger.info("MongoDB client initialized successfully")
        return db
    except Exception as e:
        logger.error(f"Failed to initialize MongoDB client: {e}")
        raise DatabaseError("Could not initialize MongoDB client", operation="connect", cause=e) from e


async def init_indexes(db):
    """Index initialization for collections."""
    logger.info("Starting database index initialization")
    created = 0
    for coll_name, keys, unique in INDEXES:
        label = f"{coll_name}.({', '.join(k for k, _ in keys)})"
        try:
            await db[coll_name].create_index(keys, unique=unique)
            created += 1
            logger.debug(f"Created {'unique ' if unique else ''}index on {label}")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.debug(f"Index on {label} already exists")
            else:
                logger.warning(f"Could not create index on {label}: {e}")

    if created == len(INDEXES):
        logger.info("Database index initialization completed successfully")
    else:
        logger.info("Application will continue without all indexes - some operations may be slower")
    return created


@contextmanager
def _db_errors(operation: str, collection: str):
    try:
        yield
    except PyMongoError as e:
        logger.error(f"{operation} on {collection} failed: {e}")
        raise DatabaseError(f"{operation} failed on {collection}", operation=operation,
                            collection=collection, cause=e) from e


def _contains(text: str) -> Dict[str, str]:
    return {"$regex": re.escape(text), "$options": "i"}


class CandidateRepository:
    """Candidate (CV) records"""

    LIST_PROJECTION = {"_id": 0, "raw_text": 0, "embedding": 0}

    def __init__(self, db):
        self.coll = db[CANDIDATES]

    @staticmethod
    def _search_query(search: Optional[str]) -> Dict[str, Any]:
        if not search:
            return {}
        return {"$or": [
            {"personal_info.name": _contains(search)},
            {"personal_info.email": _contains(search)},
            {"file_name": _contains(search)},
        ]}

    async def insert(self, record: CandidateRecord) -> CandidateRecord:
        with _db_errors("insert", CANDIDATES):
            await self.coll.insert_one(record.to_document())
        return record

    async def get(self, candidate_id: str) -> Optional[CandidateRecord]:
        with _db_errors("get", CANDIDATES):
            doc = await self.coll.find_one({"candidate_id": candidate_id}, {"_id": 0})
        return CandidateRecord(**doc) if doc else None

    async def find_by_name(self, name: str) -> Optional[CandidateRecord]:
        with _db_errors("find_by_name", CANDIDATES):
            doc = await self.coll.find_one({"personal_info.name": _contains(name)}, {"_id": 0, "raw_text": 0})
        return CandidateRecord(**doc) if doc else None

    async def list_page(self, search: Optional[str] = None, skip: int = 0, limit: int = 10) -> List[CandidateRecord]:
        with _db_errors("list", CANDIDATES):
            cursor = (self.coll.find(self._search_query(search), self.LIST_PROJECTION)
                      .sort("extracted_at", DESCENDING).skip(skip).limit(limit))
            docs = await cursor.to_list(length=limit)
        return [CandidateRecord(**d) for d in docs]

    async def count(self, search: Optional[str] = None) -> int:
        with _db_errors("count", CANDIDATES):
            return await self.coll.count_documents(self._search_query(search))

    async def find_by_predicate(self, predicate) -> List[CandidateRecord]:
        """Embedding-eligible candidates matching a CandidatePredicate, in store order"""
        with _db_errors("find", CANDIDATES):
            docs = await self.coll.find(predicate.to_query(), {"_id": 0, "raw_text": 0}).to_list(length=None)
        return [CandidateRecord(**d) for d in docs]

    async def all(self) -> List[CandidateRecord]:
        with _db_errors("find_all", CANDIDATES):
            docs = await self.coll.find({}, {"_id": 0, "raw_text": 0}).to_list(length=None)
        return [CandidateRecord(**d) for d in docs]

    async def update(self, record: CandidateRecord) -> CandidateRecord:
        record.updated_at = utcnow()
        record.refresh_searchable_text()
        doc = record.to_document()
        if record.raw_text is None:
            doc.pop("raw_text")
        with _db_errors("update", CANDIDATES):
            await self.coll.update_one({"candidate_id": record.candidate_id}, {"$set": doc})
        return record


class JobRepository:
    """Job postings; deletion is always a soft delete"""

    def __init__(self, db):
        self.coll = db[JOBS]

    @staticmethod
    def _active_query(search: Optional[str] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {"active": True}
        if search:
            query["$or"] = [
                {"title": _contains(search)},
                {"company": _contains(search)},
                {"description": _contains(search)},
                {"skills": _contains(search)},
            ]
        return query

    async def insert(self, job: JobPosting) -> JobPosting:
        with _db_errors("insert", JOBS):
            await self.coll.insert_one(job.to_document())
        return job

    async def insert_many(self, jobs: List[JobPosting]) -> int:
        if not jobs:
            return 0
        with _db_errors("insert_many", JOBS):
            result = await self.coll.insert_many([j.to_document() for j in jobs])
        return len(result.inserted_ids)

    async def get(self, job_id: str) -> Optional[JobPosting]:
        with _db_errors("get", JOBS):
            doc = await self.coll.find_one({"job_id": job_id}, {"_id": 0})
        return JobPosting(**doc) if doc else None

    async def update(self, job_id: str, fields: Dict[str, Any]) -> Optional[JobPosting]:
        fields = {**fields, "updated_at": utcnow()}
        with _db_errors("update", JOBS):
            doc = await self.coll.find_one_and_update(
                {"job_id": job_id, "active": True},
                {"$set": fields},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        return JobPosting(**doc) if doc else None

    async def soft_delete(self, job_id: str) -> bool:
        with _db_errors("soft_delete", JOBS):
            result = await self.coll.update_one(
                {"job_id": job_id, "active": True},
                {"$set": {"active": False, "updated_at": utcnow()}},
            )
        return result.modified_count > 0

    async def list_active(self, search: Optional[str] = None, skip: int = 0, limit: int = 10) -> List[JobPosting]:
        with _db_errors("list", JOBS):
            cursor = (self.coll.find(self._active_query(search), {"_id": 0})
                      .sort("created_at", DESCENDING).skip(skip).limit(limit))
            docs = await cursor.to_list(length=limit)
        return [JobPosting(**d) for d in docs]

    async def count_active(self, search: Optional[str] = None) -> int:
        with _db_errors("count", JOBS):
            return await self.coll.count_documents(self._active_query(search))

    async def all_active(self) -> List[JobPosting]:
        with _db_errors("find_all", JOBS):
            docs = await self.coll.find({"active": True}, {"_id": 0}).to_list(length=None)
        return [JobPosting(**d) for d in docs]

    async def count(self) -> int:
        with _db_errors("count", JOBS):
            return await self.coll.count_documents({})

    async def delete_all(self) -> int:
        with _db_errors("delete_all", JOBS):
            result = await self.coll.delete_many({})
        return result.deleted_count


class MatchRepository:
    """Cached match scores, unique per (candidate_id, job_id)"""

    def __init__(self, db):
        self.coll = db[MATCHES]

    async def get(self, candidate_id: str, job_id: str) -> Optional[MatchRecord]:
        with _db_errors("get", MATCHES):
            doc = await self.coll.find_one({"candidate_id": candidate_id, "job_id": job_id}, {"_id": 0})
        return MatchRecord(**doc) if doc else None

    async def for_job(self, job_id: str) -> List[MatchRecord]:
        with _db_errors("find", MATCHES):
            docs = await self.coll.find({"job_id": job_id}, {"_id": 0}).to_list(length=None)
        return [MatchRecord(**d) for d in docs]

    async def for_candidate(self, candidate_id: str) -> List[MatchRecord]:
        with _db_errors("find", MATCHES):
            docs = await self.coll.find({"candidate_id": candidate_id}, {"_id": 0}).to_list(length=None)
        return [MatchRecord(**d) for d in docs]

    async def upsert(self, record: MatchRecord) -> MatchRecord:
        """Insert or update in place, atomically keyed on the (candidate_id, job_id) pair"""
        record.updated_at = utcnow()
        fields = record.model_dump(exclude={"created_at"})
        key = {"candidate_id": record.candidate_id, "job_id": record.job_id}
        update = {"$set": fields, "$setOnInsert": {"created_at": record.created_at}}

        for attempt in range(2):
            try:
                await self.coll.update_one(key, update, upsert=True)
                return record
            except DuplicateKeyError as e:
                # two upserts raced on insert; the second one now matches the winner
                if attempt:
                    raise DatabaseError("Match upsert conflict", operation="upsert",
                                        collection=MATCHES, cause=e) from e
                logger.debug(f"Retrying match upsert for {key} after duplicate key")
            except PyMongoError as e:
                raise DatabaseError("Match upsert failed", operation="upsert",
                                    collection=MATCHES, cause=e) from e
        return record

    async def count(self) -> int:
        with _db_errors("count", MATCHES):
            return await self.coll.count_documents({})

    async def delete_all(self) -> int:
        with _db_errors("delete_all", MATCHES):
            result = await self.coll.delete_many({})
        return result.deleted_count


class ChatRepository:
    """Immutable chat turns"""

    def __init__(self, db):
        self.coll = db[CHAT_TURNS]

    @staticmethod
    def _history_query(candidate_id: Optional[str] = None, start: Optional[datetime] = None,
                       end: Optional[datetime] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if candidate_id:
            query["candidate_id"] = candidate_id
        if start or end:
            query["created_at"] = {}
            if start:
                query["created_at"]["$gte"] = start
            if end:
                query["created_at"]["$lte"] = end
        return query

    async def insert(self, turn: ChatTurn) -> ChatTurn:
        with _db_errors("insert", CHAT_TURNS):
            await self.coll.insert_one(turn.model_dump())
        return turn

    async def recent(self, candidate_id: Optional[str] = None, limit: int = 5) -> List[ChatTurn]:
        """Last `limit` turns in the same candidate scope, oldest first"""
        query = {"candidate_id": candidate_id}
        with _db_errors("recent", CHAT_TURNS):
            cursor = self.coll.find(query, {"_id": 0}).sort("created_at", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        return [ChatTurn(**d) for d in reversed(docs)]

    async def list_page(self, candidate_id: Optional[str] = None, start: Optional[datetime] = None,
                        end: Optional[datetime] = None, skip: int = 0, limit: int = 20) -> List[ChatTurn]:
        with _db_errors("list", CHAT_TURNS):
            cursor = (self.coll.find(self._history_query(candidate_id, start, end), {"_id": 0})
                      .sort("created_at", DESCENDING).skip(skip).limit(limit))
            docs = await cursor.to_list(length=limit)
        return [ChatTurn(**d) for d in docs]

    async def count(self, candidate_id: Optional[str] = None, start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> int:
        with _db_errors("count", CHAT_TURNS):
            return await self.coll.count_documents(self._history_query(candidate_id, start, end))

    async def delete_all(self) -> int:
        with _db_errors("delete_all", CHAT_TURNS):
            result = await self.coll.delete_many({})
        return result.deleted_count
