"""
BitDrop - short video drops with automatic preview thumbnails.

This package contains the complete application:
- core: Framework-agnostic business logic (auth, ingestion, retraction)
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
