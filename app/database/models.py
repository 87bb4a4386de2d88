"""SQLAlchemy models for claims analyses and the form ingestion store."""

import uuid
from datetime import datetime

from sqlalchemy import (
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ClaimsAnalysis(Base):
    """A coverage analysis and, once grounded, its grounded-fields blob."""

    __tablename__ = "claims_analyses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    state_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    form_version_ids: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list,
        comment="Form version ids used as source material"
    )
    scenario: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    output_markdown: Mapped[str] = mapped_column(Text, nullable=False, default="")
    structured_fields: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    citations: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list,
        comment="Legacy form-level citations recorded with the analysis"
    )

    grounded_fields: Mapped[dict | None] = mapped_column(
        JSONB, nullable=True,
        comment="ClauseGroundedFields blob, replaced as a whole on every grounding"
    )
    grounded_revision: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
        comment="Bumped on every write of grounded_fields"
    )
    grounded_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )


class FormVersion(Base):
    """An immutable, ingested snapshot of a reference form."""

    __tablename__ = "form_versions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    form_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    form_number: Mapped[str] = mapped_column(String, nullable=False, default="")
    form_title: Mapped[str] = mapped_column(String, nullable=False, default="")
    edition_date: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="published"
    )  # draft | published | archived
    jurisdictions: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list,
        comment="State codes or names the form applies in; 'ALL' for countrywide"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    sections: Mapped[list["FormIngestionSection"]] = relationship(
        "FormIngestionSection", back_populates="form_version", cascade="all, delete-orphan"
    )
    chunks: Mapped[list["FormIngestionChunk"]] = relationship(
        "FormIngestionChunk", back_populates="form_version", cascade="all, delete-orphan"
    )


class FormIngestionSection(Base):
    """A detected section of a form version."""

    __tablename__ = "form_ingestion_sections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_versions.id", ondelete="CASCADE"), nullable=False
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    heading: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    section_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    form_version: Mapped["FormVersion"] = relationship("FormVersion", back_populates="sections")

    __table_args__ = (
        UniqueConstraint("form_version_id", "order", name="uq_section_order"),
    )


class FormIngestionChunk(Base):
    """An ordered, immutable text chunk of a form version."""

    __tablename__ = "form_ingestion_chunks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_versions.id", ondelete="CASCADE"), nullable=False
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    section_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_ingestion_sections.id", ondelete="SET NULL"), nullable=True
    )
    page_start: Mapped[int | None] = mapped_column(Integer, nullable=True)

    form_version: Mapped["FormVersion"] = relationship("FormVersion", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("form_version_id", "chunk_index", name="uq_chunk_index"),
    )
