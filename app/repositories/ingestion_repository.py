"""Read-only access to the form ingestion store."""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import (
    FormIngestionChunk as FormIngestionChunkModel,
    FormIngestionSection as FormIngestionSectionModel,
    FormVersion,
)
from app.repositories.base_repository import BaseRepository
from app.schemas.ingestion import (
    FormIngestionChunk,
    FormIngestionSection,
    FormSourceSnapshot,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

IngestionBundle = Tuple[FormSourceSnapshot, List[FormIngestionSection], List[FormIngestionChunk]]


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class IngestionRepository(BaseRepository[FormVersion]):
    """Loads form versions with their sections and chunks for grounding."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FormVersion)

    async def get_form_version(self, org_id: UUID, form_version_id: str) -> Optional[FormVersion]:
        """Get a form version visible to ``org_id``; unparseable ids are treated as missing."""
        version_uuid = _parse_uuid(form_version_id)
        if version_uuid is None:
            LOGGER.warning(
                "Form version id is not a UUID",
                extra={"form_version_id": form_version_id},
            )
            return None

        form_version = await self.get_by_id(version_uuid)
        if form_version is None or form_version.org_id != org_id:
            return None
        return form_version

    async def get_sections(self, form_version_id: UUID) -> List[FormIngestionSection]:
        """Sections of a form version in their stable order."""
        try:
            query = (
                select(FormIngestionSectionModel)
                .where(FormIngestionSectionModel.form_version_id == form_version_id)
                .order_by(FormIngestionSectionModel.order)
            )
            result = await self.session.execute(query)
            return [
                FormIngestionSection(
                    id=str(row.id),
                    order=row.order,
                    heading=row.heading,
                    path=row.path,
                    section_type=row.section_type,
                )
                for row in result.scalars().all()
            ]
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading sections: {e}",
                extra={"form_version_id": str(form_version_id)},
                exc_info=True,
            )
            raise

    async def get_chunks(self, form_version_id: UUID) -> List[FormIngestionChunk]:
        """Chunks of a form version ordered by chunk index."""
        try:
            query = (
                select(FormIngestionChunkModel)
                .where(FormIngestionChunkModel.form_version_id == form_version_id)
                .order_by(FormIngestionChunkModel.chunk_index)
            )
            result = await self.session.execute(query)
            return [
                FormIngestionChunk(
                    id=str(row.id),
                    index=row.chunk_index,
                    text=row.text,
                    section_id=str(row.section_id) if row.section_id else None,
                    page_start=row.page_start,
                )
                for row in result.scalars().all()
            ]
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading chunks: {e}",
                extra={"form_version_id": str(form_version_id)},
                exc_info=True,
            )
            raise

    async def load_form_version(self, org_id: UUID, form_version_id: str) -> Optional[IngestionBundle]:
        """Snapshot, sections and chunks of one form version, or None if it does not exist.

        Empty section or chunk lists are returned as-is; the caller decides
        whether that counts as missing ingestion.
        """
        form_version = await self.get_form_version(org_id, form_version_id)
        if form_version is None:
            return None

        snapshot = FormSourceSnapshot(
            form_id=str(form_version.form_id),
            form_version_id=form_version_id,
            form_number=form_version.form_number or "",
            form_title=form_version.form_title or "",
            edition_date=form_version.edition_date or "",
            status=form_version.status or "published",
            jurisdictions=list(form_version.jurisdictions or []),
        )
        sections = await self.get_sections(form_version.id)
        chunks = await self.get_chunks(form_version.id)

        LOGGER.debug(
            "Loaded form version ingestion",
            extra={
                "form_version_id": form_version_id,
                "sections": len(sections),
                "chunks": len(chunks),
            },
        )
        return snapshot, sections, chunks
