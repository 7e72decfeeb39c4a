"""
Unit tests for the in-memory MongoDB stand-in.

Repositories and maintenance tasks are tested against MockMongoDatabase, so
the query and update operators they rely on need to behave like MongoDB's.
"""

import pytest
from pymongo.errors import DuplicateKeyError

from astroadmin.infrastructure.mongo.client import MockMongoDatabase, create_mongo_database, ping


@pytest.fixture
def users():
    db = MockMongoDatabase("test")
    collection = db["users"]
    collection.insert_many([
        {"user_id": "u1", "email_address": "A@Example.com", "user_type": "customer", "wallet_balance": 50},
        {"user_id": "u2", "email_address": "b@example.com", "user_type": "astrologer", "status": None},
        {"user_id": "u3", "user_type": "administrator", "wallet_balance": 0, "profile": {"city": "Pune"}},
    ])
    return collection


class TestQueries:
    """Tests for filter evaluation."""

    def test_null_matches_missing_and_null(self, users):
        """{field: None} matches documents where the field is absent or null."""
        ids = {doc["user_id"] for doc in users.find({"status": None})}
        assert ids == {"u1", "u2", "u3"}

    def test_exists_and_ne(self, users):
        ids = {doc["user_id"] for doc in users.find({"email_address": {"$exists": True, "$ne": None}})}
        assert ids == {"u1", "u2"}

    def test_case_insensitive_regex(self, users):
        doc = users.find_one({"email_address": {"$regex": "^a@example\\.com$", "$options": "i"}})
        assert doc["user_id"] == "u1"

    def test_or_and_in(self, users):
        query = {"$or": [{"user_id": "u3"}, {"user_type": {"$in": ["astrologer"]}}]}
        assert users.count_documents(query) == 2

    def test_dotted_paths(self, users):
        assert users.find_one({"profile.city": "Pune"})["user_id"] == "u3"

    def test_comparison_operators_skip_missing_fields(self, users):
        assert users.count_documents({"wallet_balance": {"$gte": 0}}) == 2
        assert users.count_documents({"wallet_balance": {"$gt": 10}}) == 1

    def test_projection_keeps_only_requested_fields(self, users):
        doc = users.find_one({"user_id": "u1"}, {"wallet_balance": 1})
        assert set(doc) == {"_id", "wallet_balance"}

    def test_sort_and_limit(self, users):
        docs = list(users.find({}).sort("user_id", -1).limit(2))
        assert [d["user_id"] for d in docs] == ["u3", "u2"]

    def test_returned_documents_are_copies(self, users):
        """Mutating a result must not change stored data."""
        doc = users.find_one({"user_id": "u1"})
        doc["wallet_balance"] = 9999

        assert users.find_one({"user_id": "u1"})["wallet_balance"] == 50


class TestWrites:
    """Tests for insert, update and delete."""

    def test_insert_assigns_id_and_rejects_duplicates(self, users):
        doc = {"user_id": "u4"}
        users.insert_one(doc)

        assert "_id" in doc
        with pytest.raises(DuplicateKeyError):
            users.insert_one({"_id": doc["_id"]})

    def test_update_reports_matched_and_modified(self, users):
        result = users.update_one({"user_id": "u1"}, {"$set": {"wallet_balance": 50}})
        assert (result.matched_count, result.modified_count) == (1, 0)

        result = users.update_one({"user_id": "u1"}, {"$inc": {"wallet_balance": 25}})
        assert result.modified_count == 1
        assert users.find_one({"user_id": "u1"})["wallet_balance"] == 75

        result = users.update_one({"user_id": "missing"}, {"$set": {"x": 1}})
        assert result.matched_count == 0

    def test_unset_and_add_to_set(self, users):
        users.update_many({}, {"$unset": {"wallet_balance": ""}})
        users.update_one({"user_id": "u1"}, {"$addToSet": {"email_aliases": {"$each": ["a", "b", "a"]}}})

        assert users.count_documents({"wallet_balance": {"$exists": True}}) == 0
        assert users.find_one({"user_id": "u1"})["email_aliases"] == ["a", "b"]

    def test_delete(self, users):
        assert users.delete_one({"user_id": "u1"}).deleted_count == 1
        assert users.delete_many({"user_type": {"$ne": "nobody"}}).deleted_count == 2
        assert users.count_documents({}) == 0


class TestDatabase:
    """Tests for collection bookkeeping."""

    def test_collections_are_listed_once_written(self):
        db = MockMongoDatabase()
        db["empty"].find_one({})
        db["users"].insert_one({"user_id": "u1"})

        assert db.list_collection_names() == ["users"]

        db["users"].drop()
        assert db.list_collection_names() == []

    def test_mock_mode_yields_a_pingable_database(self):
        with create_mongo_database(mock_mode=True) as db:
            assert ping(db)

    def test_real_mode_requires_config(self):
        with pytest.raises(ValueError):
            with create_mongo_database(mock_mode=False):
                pass
