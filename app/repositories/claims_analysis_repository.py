"""Repository for claims analysis records and their grounded-fields blob."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PersistenceError
from app.database.models import ClaimsAnalysis
from app.repositories.base_repository import BaseRepository
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClaimsAnalysisRepository(BaseRepository[ClaimsAnalysis]):
    """Data access for ClaimsAnalysis, always scoped to an org.

    Grounded fields are written as one JSONB value in one transaction: the
    write either replaces the previous blob completely or rolls back and
    leaves it untouched.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ClaimsAnalysis)

    async def get_for_org(
        self,
        org_id: UUID,
        analysis_id: UUID,
        for_update: bool = False,
    ) -> Optional[ClaimsAnalysis]:
        """Get an analysis belonging to ``org_id``.

        Args:
            org_id: Organization UUID
            analysis_id: Analysis UUID
            for_update: Lock the row (SELECT ... FOR UPDATE) and refresh it
                from the database for a read-modify-write

        Returns:
            ClaimsAnalysis if found, None otherwise
        """
        try:
            query = select(ClaimsAnalysis).where(
                ClaimsAnalysis.id == analysis_id,
                ClaimsAnalysis.org_id == org_id,
            )
            if for_update:
                query = query.with_for_update().execution_options(populate_existing=True)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error getting claims analysis: {e}",
                extra={"org_id": str(org_id), "analysis_id": str(analysis_id)},
                exc_info=True,
            )
            raise

    async def list_for_org(self, org_id: UUID, limit: int = 50) -> List[ClaimsAnalysis]:
        """Most recent analyses of an org."""
        return await self.get_all(
            limit=limit,
            filters={"org_id": org_id},
            order_by=[ClaimsAnalysis.created_at.desc(), ClaimsAnalysis.id],
        )

    async def write_grounded_fields(
        self,
        analysis: ClaimsAnalysis,
        grounded_fields: dict,
    ) -> ClaimsAnalysis:
        """Replace the grounded-fields blob and commit.

        Args:
            analysis: Analysis loaded in this session (locked for update)
            grounded_fields: JSON-ready ClauseGroundedFields dump

        Returns:
            The updated analysis

        Raises:
            PersistenceError: the write failed; the transaction is rolled back
        """
        try:
            analysis.grounded_fields = grounded_fields
            analysis.grounded_revision = (analysis.grounded_revision or 0) + 1
            analysis.grounded_at = datetime.now(timezone.utc)
            await self.session.flush()
            await self.session.commit()

            LOGGER.info(
                "Persisted grounded fields",
                extra={
                    "analysis_id": str(analysis.id),
                    "grounded_revision": analysis.grounded_revision,
                },
            )
            return analysis
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error persisting grounded fields: {e}",
                extra={"analysis_id": str(analysis.id)},
                exc_info=True,
            )
            raise PersistenceError(
                f"Failed to persist grounded fields for analysis {analysis.id}",
                original_error=e,
            )

    async def release(self) -> None:
        """End the current transaction without writing, releasing row locks."""
        await self.session.rollback()
