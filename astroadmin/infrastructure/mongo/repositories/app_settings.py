"""App settings repository (single `general` document in app_settings)."""

from typing import Any, Optional

APP_SETTINGS_COLLECTION = "app_settings"


class AppSettingsRepository:

    def __init__(self, db: Any) -> None:
        self._collection = db[APP_SETTINGS_COLLECTION]

    def get_general(self) -> Optional[dict[str, Any]]:
        return self._collection.find_one({"type": "general"})
