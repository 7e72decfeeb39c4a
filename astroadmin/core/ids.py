"""
Custom document identifiers.

Records are addressed by ids like `user_1756540752442_2s0gyae9` rather than
by MongoDB ObjectIds, so references survive copying data between databases.
"""

import secrets
import time

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_RANDOM_LENGTH = 8


def random_suffix(length: int = _RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_custom_id(entity_type: str) -> str:
    """Build `{entity}_{epoch_ms}_{8 random base36 chars}`."""
    timestamp = int(time.time() * 1000)
    return f"{entity_type}_{timestamp}_{random_suffix()}"


def generate_user_id() -> str:
    return generate_custom_id("user")


def generate_media_id() -> str:
    return generate_custom_id("media")


def is_media_id(value: str) -> bool:
    return bool(value) and value.startswith("media_")
