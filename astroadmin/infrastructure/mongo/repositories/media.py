"""
Media repository.

Backs the media library. Records are keyed by custom `media_id`; records
written before media ids existed only have an `_id`, so deletes fall back
to it.
"""

import logging
from typing import Any, Optional

from ....core.media import MediaRecord

logger = logging.getLogger(__name__)

MEDIA_COLLECTION = "media"


class MediaRepository:

    def __init__(self, db: Any) -> None:
        self._collection = db[MEDIA_COLLECTION]

    def create(self, record: MediaRecord) -> str:
        self._collection.insert_one(record.to_document())
        return record.media_id

    def get(self, media_id: str) -> Optional[dict[str, Any]]:
        return self._collection.find_one({"media_id": media_id})

    def list_all(self) -> list[dict[str, Any]]:
        return list(self._collection.find({}))

    def delete(self, media_id: str) -> bool:
        return self._collection.delete_one({"media_id": media_id}).deleted_count > 0

    def delete_record(self, doc: dict[str, Any]) -> bool:
        query = {"media_id": doc["media_id"]} if doc.get("media_id") else {"_id": doc["_id"]}
        return self._collection.delete_one(query).deleted_count > 0

    def known_paths(self) -> set[str]:
        return {
            doc["file_path"]
            for doc in self._collection.find({}, {"file_path": 1})
            if doc.get("file_path")
        }

    def known_filenames(self) -> set[str]:
        return {
            doc["filename"]
            for doc in self._collection.find({}, {"filename": 1})
            if doc.get("filename")
        }
