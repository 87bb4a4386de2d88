"""Database module for SQLAlchemy models."""

from app.database.models import (
    ClaimsAnalysis,
    FormIngestionChunk,
    FormIngestionSection,
    FormVersion,
)

__all__ = [
    "ClaimsAnalysis",
    "FormVersion",
    "FormIngestionSection",
    "FormIngestionChunk",
]
