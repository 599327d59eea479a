"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .drops import DropRepository

__all__ = ["DropRepository"]
