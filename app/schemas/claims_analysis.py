"""Claims analysis record schemas (the input being grounded)."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CoverageDetermination(str, Enum):
    """Top-level coverage outcome of an analysis."""
    COVERED = "covered"
    NOT_COVERED = "not_covered"
    PARTIALLY_COVERED = "partially_covered"
    INSUFFICIENT_INFORMATION = "insufficient_information"


class ClaimScenario(BaseModel):
    """Structured scenario facts submitted for analysis."""

    loss_date: Optional[str] = Field(None, description="Date of loss (ISO date string)")
    cause_of_loss: str = Field(default="other", description="Primary cause of loss, e.g. 'fire'")
    cause_of_loss_detail: Optional[str] = Field(None, description="Cause description when 'other'")
    damage_types: List[str] = Field(default_factory=list, description="Types of damage sustained")
    estimated_damages: Optional[float] = Field(None, ge=0, description="Estimated total damages")
    facts_narrative: str = Field(default="", description="Free-form narrative of facts")
    additional_facts: Dict[str, str] = Field(default_factory=dict, description="Additional key-value facts")
    loss_location: Optional[str] = Field(None, description="Location of loss (state / address)")
    claimant_name: Optional[str] = Field(None, description="Claimant name")
    policy_number: Optional[str] = Field(None, description="Policy number")


class AnalysisStructuredFields(BaseModel):
    """Structured fields parsed from the analysis output."""

    determination: CoverageDetermination = Field(
        default=CoverageDetermination.INSUFFICIENT_INFORMATION,
        description="Overall coverage determination",
    )
    summary: str = Field(default="", description="Brief summary")
    applicable_coverages: List[str] = Field(default_factory=list)
    relevant_exclusions: List[str] = Field(default_factory=list)
    conditions_and_limitations: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AnalysisCitation(BaseModel):
    """Legacy form-section level citation recorded with the analysis."""

    form_version_id: str = Field(..., description="Referenced form version")
    form_label: str = Field(default="", description="Form identifier for display")
    section: str = Field(default="", description="Section heading or identifier")
    excerpt_hash: str = Field(default="", description="Hash of the excerpt text")
    location_hint: str = Field(default="", description="Page / paragraph hint")
    excerpt_text: Optional[str] = Field(None, description="Excerpt text")


class ClaimsAnalysisRecord(BaseModel):
    """A persisted claims analysis as seen by the grounding service."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    state_code: Optional[str] = None
    form_version_ids: List[str] = Field(default_factory=list)
    scenario: ClaimScenario = Field(default_factory=ClaimScenario)
    output_markdown: str = ""
    structured_fields: AnalysisStructuredFields = Field(default_factory=AnalysisStructuredFields)
    citations: List[AnalysisCitation] = Field(default_factory=list)
    grounded_revision: int = 0
    grounded_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


__all__ = [
    "CoverageDetermination",
    "ClaimScenario",
    "AnalysisStructuredFields",
    "AnalysisCitation",
    "ClaimsAnalysisRecord",
]
