"""
Drop ingestion and retraction.

Contains the domain models and the two orchestrators that create and
remove drops.
"""

from .ingestion import IngestionOrchestrator
from .models import Drop, DropDetails, DropOwner, Visibility, parse_group_id
from .retraction import RetractionOrchestrator

__all__ = [
    "Drop",
    "DropDetails",
    "DropOwner",
    "IngestionOrchestrator",
    "RetractionOrchestrator",
    "Visibility",
    "parse_group_id",
]
