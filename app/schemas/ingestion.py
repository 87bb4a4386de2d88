"""Ingestion store schemas: form versions segmented into sections and chunks.

A form version is an immutable snapshot of a reference document. Chunk
boundaries never change after ingestion; re-ingestion produces a new version.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FormIngestionSection(BaseModel):
    """A detected structural section of a form version."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Section id")
    order: int = Field(..., ge=0, description="Stable ordering within the form version")
    heading: str = Field(..., description="Section heading as detected from the text")
    path: str = Field(..., description="Section path used for citations, e.g. 'Section I — Coverage A'")
    section_type: Optional[str] = Field(
        None, description="Classified section type (coverage, exclusion, condition, ...)"
    )


class FormIngestionChunk(BaseModel):
    """An ordered, immutable text chunk of a form version."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Chunk id")
    index: int = Field(..., ge=0, description="Dense 0-based index within the form version")
    text: str = Field(..., description="Raw chunk text")
    section_id: Optional[str] = Field(None, description="Owning section id")
    page_start: Optional[int] = Field(None, ge=1, description="First page of the chunk, if known")


class FormSourceSnapshot(BaseModel):
    """Lightweight snapshot of a form version used as source for an analysis."""

    form_id: str = Field(..., description="Form id")
    form_version_id: str = Field(..., description="Form version id")
    form_number: str = Field(default="", description="Form number, e.g. 'CP 00 10'")
    form_title: str = Field(default="", description="Form title")
    edition_date: str = Field(default="", description="Edition date, e.g. '10/12'")
    status: str = Field(default="published", description="Form version status")
    jurisdictions: List[str] = Field(
        default_factory=list,
        description="State codes or names the form version applies in ('ALL' for countrywide)",
    )

    @property
    def form_label(self) -> str:
        """Display label, e.g. 'CP 00 10 10/12'."""
        label = f"{self.form_number} {self.edition_date}".strip()
        return label or self.form_version_id


__all__ = [
    "FormIngestionSection",
    "FormIngestionChunk",
    "FormSourceSnapshot",
]
