"""
Repository pattern implementations for MongoDB.

Repositories translate between domain models and documents.
"""

from .app_settings import AppSettingsRepository
from .media import MediaRepository
from .users import UserRepository

__all__ = ["AppSettingsRepository", "MediaRepository", "UserRepository"]
