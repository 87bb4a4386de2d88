from .claims_analysis import (
    AnalysisCitation,
    AnalysisStructuredFields,
    ClaimScenario,
    ClaimsAnalysisRecord,
    CoverageDetermination,
)
from .clause_grounding import (
    AnalysisComparison,
    Citation,
    CitedConclusion,
    ClauseGroundedFields,
    DecisionGate,
    GroundingInput,
    OpenQuestion,
)
from .ingestion import FormIngestionChunk, FormIngestionSection, FormSourceSnapshot

__all__ = [
    "AnalysisCitation",
    "AnalysisStructuredFields",
    "ClaimScenario",
    "ClaimsAnalysisRecord",
    "CoverageDetermination",
    "AnalysisComparison",
    "Citation",
    "CitedConclusion",
    "ClauseGroundedFields",
    "DecisionGate",
    "GroundingInput",
    "OpenQuestion",
    "FormIngestionChunk",
    "FormIngestionSection",
    "FormSourceSnapshot",
]
