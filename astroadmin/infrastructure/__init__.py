"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- mongo: MongoDB persistence (plus an in-memory mock)
- storage: media file storage (local disk or R2/S3)

These wrappers translate between external formats and our domain models.
"""
