"""
MongoDB persistence.

The client module owns connections (and the in-memory mock); repositories
own the collections.
"""

from .client import DatabaseError, MockMongoDatabase, MongoConfig, create_mongo_database

__all__ = ["DatabaseError", "MockMongoDatabase", "MongoConfig", "create_mongo_database"]
