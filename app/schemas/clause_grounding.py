"""Clause-grounded analysis schemas.

These models describe the grounded-fields blob owned by one claims analysis:
conclusions anchored to verbatim form excerpts, the open-question checklist,
and the decision gates that track human review. The blob is persisted as a
single unit, and list ordering is part of its contract.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.schemas.claims_analysis import (
    AnalysisCitation,
    AnalysisStructuredFields,
    ClaimScenario,
    ClaimsAnalysisRecord,
    CoverageDetermination,
)
from app.schemas.ingestion import FormIngestionChunk, FormIngestionSection, FormSourceSnapshot


# ============================================================================
# Enums
# ============================================================================


class ConclusionType(str, Enum):
    """Which structured-field list a conclusion was derived from."""
    COVERAGE_GRANT = "coverage_grant"
    EXCLUSION = "exclusion"
    CONDITION = "condition"
    RECOMMENDATION = "recommendation"


class CitationRelevance(str, Enum):
    """How strongly a citation supports its conclusion."""
    DIRECT = "direct"
    SUPPORTING = "supporting"
    CONTEXTUAL = "contextual"


class ConfidenceLevel(str, Enum):
    """Confidence of a cited conclusion."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OpenQuestionCategory(str, Enum):
    """Why an open question was raised."""
    MISSING_FACT = "missing_fact"
    AMBIGUOUS_CLAUSE = "ambiguous_clause"
    CONFLICTING_PROVISIONS = "conflicting_provisions"
    JURISDICTIONAL = "jurisdictional"


class DecisionGateStatus(str, Enum):
    """Review state of a decision gate."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class ChangeType(str, Enum):
    """Delta classification used by analysis comparison."""
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


# ============================================================================
# Grounding input
# ============================================================================


class GroundingInput(BaseModel):
    """Everything the pure grounding pipeline needs, already loaded."""

    structured_fields: AnalysisStructuredFields
    existing_citations: List[AnalysisCitation] = Field(default_factory=list)
    sections_by_form_version: Dict[str, List[FormIngestionSection]] = Field(default_factory=dict)
    chunks_by_form_version: Dict[str, List[FormIngestionChunk]] = Field(default_factory=dict)
    sources: List[FormSourceSnapshot] = Field(default_factory=list)
    output_markdown: str = ""
    scenario: ClaimScenario = Field(default_factory=ClaimScenario)
    state_code: Optional[str] = Field(None, description="Jurisdiction hint recorded with the analysis")


class AtomicConclusion(BaseModel):
    """A single typed statement decomposed from the structured fields.

    Derived, never persisted on its own. The id is a hash of
    (type, source_field_index, statement) so unchanged input yields
    unchanged ids.
    """

    id: str
    type: ConclusionType
    statement: str
    source_field_index: int = Field(..., ge=0)


# ============================================================================
# Grounded fields
# ============================================================================


class Citation(BaseModel):
    """A verbatim form excerpt supporting a conclusion."""

    form_version_id: str
    form_label: str
    section_path: str
    anchor_slug: str
    page: int = Field(..., ge=1)
    chunk_index: int = Field(..., ge=0)
    excerpt: str = Field(..., description="Verbatim substring of the chunk text")
    excerpt_hash: str = Field(..., description="hash_excerpt(excerpt)")
    relevance: CitationRelevance


class CitedConclusion(BaseModel):
    """A conclusion together with the excerpts that ground it."""

    id: str
    order: int = Field(..., ge=0)
    type: ConclusionType
    statement: str
    reasoning: str
    confidence: ConfidenceLevel
    citations: List[Citation] = Field(default_factory=list)


class OpenQuestion(BaseModel):
    """Something still unknown before the analysis can be considered final."""

    id: str
    order: int = Field(..., ge=0)
    category: OpenQuestionCategory
    question: str
    impact: str
    affected_conclusion_ids: List[str] = Field(default_factory=list)
    resolved: bool = False
    resolution: Optional[str] = None


class DecisionGate(BaseModel):
    """A named human-review checkpoint."""

    id: str
    name: str
    status: DecisionGateStatus = DecisionGateStatus.PENDING
    assignee_role: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    notes: Optional[str] = None


class ClauseGroundedFields(BaseModel):
    """The grounded-fields blob owned by exactly one analysis record."""

    analysis_version: int = Field(..., ge=1)
    prior_analysis_id: Optional[str] = None
    conclusions: List[CitedConclusion] = Field(default_factory=list)
    open_questions: List[OpenQuestion] = Field(default_factory=list)
    decision_gates: List[DecisionGate] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


# ============================================================================
# Comparison
# ============================================================================


class ConclusionDelta(BaseModel):
    conclusion_id: str
    type: ConclusionType
    statement: str
    change_type: ChangeType
    previous_confidence: Optional[ConfidenceLevel] = None


class QuestionDelta(BaseModel):
    question_id: str
    question: str
    change_type: ChangeType
    newly_resolved: bool = False


class ComparisonStats(BaseModel):
    conclusions_added: int = 0
    conclusions_removed: int = 0
    conclusions_changed: int = 0
    conclusions_unchanged: int = 0
    questions_resolved: int = 0
    questions_added: int = 0
    questions_removed: int = 0


class AnalysisComparison(BaseModel):
    """Structured delta between two grounded analyses (derived, not persisted)."""

    left_analysis_id: str
    right_analysis_id: str
    left_version: int
    right_version: int
    determination_changed: bool
    left_determination: CoverageDetermination
    right_determination: CoverageDetermination
    conclusion_deltas: List[ConclusionDelta] = Field(default_factory=list)
    question_deltas: List[QuestionDelta] = Field(default_factory=list)
    stats: ComparisonStats = Field(default_factory=ComparisonStats)


class GroundedAnalysisSide(BaseModel):
    """One side of a comparison: an analysis id, its determination and grounding."""

    id: str
    determination: CoverageDetermination
    grounded: ClauseGroundedFields


# ============================================================================
# Service / API payloads
# ============================================================================


class GroundedAnalysis(BaseModel):
    """An analysis record with its grounded fields, if any."""

    analysis: ClaimsAnalysisRecord
    grounded: Optional[ClauseGroundedFields] = None


class GroundedAnalysisSummary(BaseModel):
    analysis: ClaimsAnalysisRecord
    is_grounded: bool
    version: int = 0


class GroundAnalysisRequest(BaseModel):
    prior_analysis_id: Optional[str] = Field(
        None, description="Previously grounded analysis this one supersedes"
    )


class ResolveOpenQuestionRequest(BaseModel):
    resolution: str = Field(..., min_length=1, description="How the question was answered")


class AdvanceDecisionGateRequest(BaseModel):
    status: DecisionGateStatus = Field(..., description="approved, rejected or needs_review")
    notes: Optional[str] = Field(None, description="Optional reviewer notes")


__all__ = [
    "ConclusionType",
    "CitationRelevance",
    "ConfidenceLevel",
    "OpenQuestionCategory",
    "DecisionGateStatus",
    "ChangeType",
    "GroundingInput",
    "AtomicConclusion",
    "Citation",
    "CitedConclusion",
    "OpenQuestion",
    "DecisionGate",
    "ClauseGroundedFields",
    "ConclusionDelta",
    "QuestionDelta",
    "ComparisonStats",
    "AnalysisComparison",
    "GroundedAnalysisSide",
    "GroundedAnalysis",
    "GroundedAnalysisSummary",
    "GroundAnalysisRequest",
    "ResolveOpenQuestionRequest",
    "AdvanceDecisionGateRequest",
]
