"""
AstroAdmin - admin backend for an astrology consultation platform.

This package contains the complete application:
- core: Framework-agnostic rules (tokens, ids, media, app config)
- infrastructure: MongoDB and file storage integrations
- api: FastAPI routes and dependencies
- maintenance: one-off database maintenance tasks
- config: Application configuration
"""

__version__ = "0.1.0"
