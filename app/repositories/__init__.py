"""Repository layer modules."""

from app.repositories.claims_analysis_repository import ClaimsAnalysisRepository
from app.repositories.ingestion_repository import IngestionRepository

__all__ = [
    "ClaimsAnalysisRepository",
    "IngestionRepository",
]
