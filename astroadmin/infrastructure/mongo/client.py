"""
MongoDB connection management.

Provides the client factory and a context manager for scripts, plus an
in-memory mock database for local development and tests.

Most code never touches this module directly - it goes through the
repositories, which translate between documents and domain models.
"""

import copy
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Iterator, Optional, Union

from bson import ObjectId
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Raised when the database cannot be reached or a driver call fails."""
    pass


@dataclass
class MongoConfig:
    """Connection parameters for MongoDB."""
    url: str
    db_name: str
    server_selection_timeout_ms: int = 10000
    max_pool_size: int = 50
    min_pool_size: int = 5


def create_mongo_client(config: MongoConfig) -> MongoClient:
    """
    Create a pooled client and verify the server answers a ping.

    The client is meant to live for the whole process; pymongo pools
    connections internally.
    """
    client = MongoClient(
        config.url,
        maxPoolSize=config.max_pool_size,
        minPoolSize=config.min_pool_size,
        serverSelectionTimeoutMS=config.server_selection_timeout_ms,
        socketTimeoutMS=45000,
        connectTimeoutMS=10000,
        maxIdleTimeMS=300000,
        retryWrites=True,
        retryReads=True,
    )

    try:
        client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        logger.error(
            "MongoDB connection failed",
            extra={"database": config.db_name, "error": str(e)}
        )
        raise DatabaseError(f"Database connection failed: {e}") from e

    logger.info("Connected to MongoDB", extra={"database": config.db_name})
    return client


@contextmanager
def get_mongo_database(config: MongoConfig) -> Generator[Database, None, None]:
    """
    Provide a database handle with automatic cleanup.

    Usage:
        with get_mongo_database(config) as db:
            db["users"].find_one({"user_id": user_id})
    """
    client = create_mongo_client(config)
    try:
        yield client[config.db_name]
    finally:
        client.close()
        logger.debug("Closed MongoDB connection")


def ping(db: Any) -> bool:
    """Return True when the database answers a ping."""
    try:
        result = db.command("ping")
    except Exception as e:
        logger.error("Database ping failed", extra={"error": str(e)})
        return False
    return bool(result.get("ok"))


# ---------------------------------------------------------------------------
# Mock Database for Local Development
# ---------------------------------------------------------------------------

_MISSING = object()


@dataclass
class InsertOneResult:
    inserted_id: Any


@dataclass
class InsertManyResult:
    inserted_ids: list[Any] = field(default_factory=list)


@dataclass
class UpdateResult:
    matched_count: int = 0
    modified_count: int = 0


@dataclass
class DeleteResult:
    deleted_count: int = 0


def _get_path(doc: dict, key: str) -> Any:
    """Resolve a dotted key; returns _MISSING when any segment is absent."""
    value: Any = doc
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(doc: dict, key: str, value: Any) -> None:
    parts = key.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _unset_path(doc: dict, key: str) -> None:
    parts = key.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.get(part)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    if value is _MISSING:
        return False
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compare(value: Any, op: str, arg: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        if op == "$gt":
            return value > arg
        if op == "$gte":
            return value >= arg
        if op == "$lt":
            return value < arg
        return value <= arg
    except TypeError:
        return False


def _match_operators(value: Any, conditions: dict) -> bool:
    for op, arg in conditions.items():
        if op == "$eq":
            ok = _equals(value, arg)
        elif op == "$ne":
            ok = not _equals(value, arg)
        elif op == "$in":
            ok = any(_equals(value, item) for item in arg)
        elif op == "$nin":
            ok = not any(_equals(value, item) for item in arg)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(arg)
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in conditions.get("$options", "") else 0
            ok = isinstance(value, str) and re.search(arg, value, flags) is not None
        elif op == "$options":
            ok = True
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(value, op, arg)
        else:
            raise NotImplementedError(f"Mock database does not support {op}")
        if not ok:
            return False
    return True


def matches(doc: dict, query: Optional[dict]) -> bool:
    """Evaluate the subset of the MongoDB query language the repositories use."""
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        else:
            value = _get_path(doc, key)
            is_operator = (
                isinstance(condition, dict)
                and condition
                and all(k.startswith("$") for k in condition)
            )
            if is_operator:
                if not _match_operators(value, condition):
                    return False
            elif not _equals(value, condition):
                return False
    return True


def _project(doc: dict, projection: Optional[dict]) -> dict:
    if not projection:
        return copy.deepcopy(doc)

    include_id = projection.get("_id", 1)
    fields = {k: v for k, v in projection.items() if k != "_id"}

    if fields and all(v for v in fields.values()):
        result = {}
        for key in fields:
            value = _get_path(doc, key)
            if value is not _MISSING:
                _set_path(result, key, copy.deepcopy(value))
    else:
        result = copy.deepcopy(doc)
        for key in fields:
            _unset_path(result, key)

    if include_id and "_id" in doc:
        result["_id"] = doc["_id"]
    else:
        result.pop("_id", None)
    return result


def _sort_value(key: str):
    def value_of(doc: dict) -> tuple:
        value = _get_path(doc, key)
        if value is _MISSING or value is None:
            return (0, None)
        return (1, value)
    return value_of


class MockCursor:
    """Just enough of pymongo's Cursor: sort, limit and iteration."""

    def __init__(self, docs: list[dict], projection: Optional[dict]) -> None:
        self._docs = docs
        self._projection = projection
        self._limit = 0

    def sort(self, key: Union[str, list], direction: int = 1) -> "MockCursor":
        keys = key if isinstance(key, list) else [(key, direction)]
        # Stable sorts applied last-key-first give a multi-key ordering
        for sort_key, sort_dir in reversed(keys):
            self._docs.sort(key=_sort_value(sort_key), reverse=sort_dir < 0)
        return self

    def limit(self, count: int) -> "MockCursor":
        self._limit = count
        return self

    def __iter__(self) -> Iterator[dict]:
        docs = self._docs[:self._limit] if self._limit else self._docs
        return iter([_project(doc, self._projection) for doc in docs])


class MockCollection:
    """
    In-memory collection.

    Documents are deep-copied on the way in and out, so callers can't
    mutate stored state by accident (the real driver behaves the same way).
    """

    def __init__(self, database: "MockMongoDatabase", name: str) -> None:
        self._database = database
        self.name = name
        self._docs: list[dict] = []

    def _matching(self, query: Optional[dict]) -> list[dict]:
        return [doc for doc in self._docs if matches(doc, query)]

    def find(self, filter: Optional[dict] = None, projection: Optional[dict] = None) -> MockCursor:
        return MockCursor(self._matching(filter), projection)

    def find_one(self, filter: Optional[dict] = None, projection: Optional[dict] = None) -> Optional[dict]:
        for doc in self._docs:
            if matches(doc, filter):
                return _project(doc, projection)
        return None

    def count_documents(self, filter: Optional[dict] = None) -> int:
        return len(self._matching(filter))

    def insert_one(self, document: dict) -> InsertOneResult:
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        if any(existing["_id"] == doc["_id"] for existing in self._docs):
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}")
        self._docs.append(doc)
        self._database._mark_created(self.name)
        document.setdefault("_id", doc["_id"])
        return InsertOneResult(inserted_id=doc["_id"])

    def insert_many(self, documents: list[dict], ordered: bool = True) -> InsertManyResult:
        result = InsertManyResult()
        for document in documents:
            result.inserted_ids.append(self.insert_one(document).inserted_id)
        return result

    def _apply_update(self, doc: dict, update: dict) -> bool:
        before = copy.deepcopy(doc)
        for op, fields in update.items():
            for key, value in fields.items():
                if op == "$set":
                    _set_path(doc, key, copy.deepcopy(value))
                elif op == "$unset":
                    _unset_path(doc, key)
                elif op == "$inc":
                    current = _get_path(doc, key)
                    _set_path(doc, key, (0 if current is _MISSING else current) + value)
                elif op == "$addToSet":
                    current = _get_path(doc, key)
                    items = current if isinstance(current, list) else []
                    additions = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
                    for item in additions:
                        if item not in items:
                            items.append(item)
                    _set_path(doc, key, items)
                else:
                    raise NotImplementedError(f"Mock database does not support {op}")
        return doc != before

    def update_one(self, filter: dict, update: dict) -> UpdateResult:
        for doc in self._docs:
            if matches(doc, filter):
                return UpdateResult(matched_count=1, modified_count=int(self._apply_update(doc, update)))
        return UpdateResult()

    def update_many(self, filter: dict, update: dict) -> UpdateResult:
        result = UpdateResult()
        for doc in self._matching(filter):
            result.matched_count += 1
            result.modified_count += int(self._apply_update(doc, update))
        return result

    def delete_one(self, filter: dict) -> DeleteResult:
        for index, doc in enumerate(self._docs):
            if matches(doc, filter):
                del self._docs[index]
                return DeleteResult(deleted_count=1)
        return DeleteResult()

    def delete_many(self, filter: dict) -> DeleteResult:
        keep = [doc for doc in self._docs if not matches(doc, filter)]
        deleted = len(self._docs) - len(keep)
        self._docs = keep
        return DeleteResult(deleted_count=deleted)

    def drop(self) -> None:
        self._database.drop_collection(self.name)


class MockMongoDatabase:
    """
    In-memory database for local development.

    Implements the subset of pymongo's Database and Collection API the
    repositories and maintenance tasks use. Not suitable for production,
    but enough for:
    - Local development without MongoDB
    - Unit tests
    - CI environments
    """

    def __init__(self, name: str = "mock") -> None:
        self.name = name
        self._collections: dict[str, MockCollection] = {}
        self._created: set[str] = set()
        logger.info("Initialized mock MongoDB database (in-memory)")

    def __getitem__(self, name: str) -> MockCollection:
        if name not in self._collections:
            self._collections[name] = MockCollection(self, name)
        return self._collections[name]

    def get_collection(self, name: str) -> MockCollection:
        return self[name]

    def _mark_created(self, name: str) -> None:
        self._created.add(name)

    def create_collection(self, name: str) -> MockCollection:
        self._mark_created(name)
        return self[name]

    def list_collection_names(self) -> list[str]:
        return sorted(self._created)

    def drop_collection(self, name: str) -> None:
        self._collections.pop(name, None)
        self._created.discard(name)

    def command(self, command: str) -> dict:
        if command == "ping":
            return {"ok": 1.0}
        raise NotImplementedError(f"Mock database does not support command {command}")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_mongo_database(
    config: Optional[MongoConfig] = None,
    mock_mode: bool = False,
) -> Generator[Any, None, None]:
    """
    Yield a real or in-memory database depending on mock_mode.

    Args:
        config: MongoDB configuration (required if not mock_mode)
        mock_mode: If True, yield an empty MockMongoDatabase
    """
    if mock_mode:
        yield MockMongoDatabase()
        return

    if config is None:
        raise ValueError("config is required when not in mock mode")

    with get_mongo_database(config) as db:
        yield db
