import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from timesheet import config

logger = logging.getLogger("database")

COL_USERS = "user"
COL_TIME_ENTRIES = "timeentry"
COL_SCHEDULES = "schedule"
COL_BRANCHES = "branch"
COL_ANNOUNCEMENTS = "announcement"
COL_SCHEDULE_LOCKS = "schedule_lock"

SCHEDULE_TTL_SECONDS = 180 * 24 * 60 * 60
TIME_ENTRY_TTL_SECONDS = 90 * 24 * 60 * 60
LOCK_TTL_SECONDS = 30

# MongoClient connects lazily, so importing this module never blocks.
_client = MongoClient(config.MONGODB_URI, serverSelectionTimeoutMS=5000)
db = _client[config.DATABASE_NAME]


class SlotBusyError(Exception):
    """Another writer currently holds the worker/day slot."""


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes; store them the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _collection(name: str) -> Collection:
    return db[name]


def collection(name: str) -> Collection:
    return _collection(name)


def create_document(collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        now = utcnow()
        data.setdefault("created_at", now)
        data["updated_at"] = now
        res = _collection(collection_name).insert_one(data)
        data["_id"] = res.inserted_id
        return data
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.exception("Mongo insert failed: %s", e)
        raise


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
    skip: Optional[int] = None,
) -> List[Dict[str, Any]]:
    try:
        cursor = _collection(collection_name).find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
    except PyMongoError as e:
        logger.exception("Mongo query failed: %s", e)
        raise


def get_one(collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        return _collection(collection_name).find_one(filter_dict)
    except PyMongoError as e:
        logger.exception("Mongo query failed: %s", e)
        raise


def count_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
    try:
        return _collection(collection_name).count_documents(filter_dict or {})
    except PyMongoError as e:
        logger.exception("Mongo count failed: %s", e)
        raise


def update_document(collection_name: str, filter_dict: Dict[str, Any], update: Dict[str, Any]) -> int:
    """Apply ``update`` to the first match and return the matched count."""
    try:
        update.setdefault("$set", {})
        update["$set"]["updated_at"] = utcnow()
        res = _collection(collection_name).update_one(filter_dict, update)
        return res.matched_count
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.exception("Mongo update failed: %s", e)
        raise


def delete_documents(collection_name: str, filter_dict: Dict[str, Any]) -> int:
    try:
        res = _collection(collection_name).delete_many(filter_dict)
        return res.deleted_count
    except PyMongoError as e:
        logger.exception("Mongo delete failed: %s", e)
        raise


def ensure_indexes() -> None:
    users = _collection(COL_USERS)
    users.create_index("username", unique=True)
    users.create_index("employee_id", unique=True)

    branches = _collection(COL_BRANCHES)
    branches.create_index("name", unique=True)
    branches.create_index("code", unique=True)
    branches.create_index([("is_active", ASCENDING), ("name", ASCENDING)])

    schedules = _collection(COL_SCHEDULES)
    schedules.create_index([("worker_id", ASCENDING), ("date", ASCENDING)])
    schedules.create_index([("branch_id", ASCENDING), ("date", ASCENDING)])
    schedules.create_index([("date", ASCENDING), ("status", ASCENDING)])
    schedules.create_index("created_at", expireAfterSeconds=SCHEDULE_TTL_SECONDS)

    entries = _collection(COL_TIME_ENTRIES)
    entries.create_index("date", expireAfterSeconds=TIME_ENTRY_TTL_SECONDS)
    entries.create_index([("user_id", ASCENDING), ("date", DESCENDING)])

    locks = _collection(COL_SCHEDULE_LOCKS)
    locks.create_index([("worker_id", ASCENDING), ("date", ASCENDING)], unique=True)
    locks.create_index("expires_at", expireAfterSeconds=0)


def ping() -> bool:
    try:
        _client.admin.command("ping")
        return True
    except PyMongoError:
        return False


def connect_with_retry(stop: Optional[threading.Event] = None, delay: Optional[float] = None) -> bool:
    """Ping until MongoDB answers, then create indexes.

    Retries forever unless ``stop`` is set.
    """
    delay = config.DB_RETRY_SECONDS if delay is None else delay
    while stop is None or not stop.is_set():
        if ping():
            logger.info("MongoDB connected successfully")
            try:
                ensure_indexes()
            except PyMongoError as e:
                logger.exception("Index creation failed: %s", e)
            return True
        logger.error("MongoDB connection error, retrying in %s seconds...", delay)
        if stop is not None:
            stop.wait(delay)
        else:
            time.sleep(delay)
    return False


def start_connection_thread() -> threading.Thread:
    thread = threading.Thread(target=connect_with_retry, name="mongo-connect", daemon=True)
    thread.start()
    return thread


@contextmanager
def slot_lock(worker_id: Any, day: datetime, attempts: int = 5, wait: float = 0.1):
    """Hold the (worker, day) claim while a schedule is checked and written.

    The claim is a document under a unique index, so two writers for the
    same worker and day cannot both pass the conflict check. Claims expire
    through a TTL index if a holder dies.
    """
    locks = _collection(COL_SCHEDULE_LOCKS)
    key = {"worker_id": worker_id, "date": day}
    for attempt in range(attempts):
        try:
            now = utcnow()
            res = locks.insert_one({**key, "expires_at": now + timedelta(seconds=LOCK_TTL_SECONDS)})
            break
        except DuplicateKeyError:
            # reclaim a claim whose holder never released it
            locks.delete_one({**key, "expires_at": {"$lt": utcnow()}})
            if attempt == attempts - 1:
                raise SlotBusyError(f"Schedule slot for worker {worker_id} on {day.date()} is busy")
            time.sleep(wait)
    try:
        yield
    finally:
        locks.delete_one({"_id": res.inserted_id})
