"""Clause grounding: anchor analysis conclusions to verbatim form clauses."""

from app.services.clause_grounding.citation_resolver import CitationResolver, ResolverConfig
from app.services.clause_grounding.comparison_engine import compare_analyses
from app.services.clause_grounding.grounding_engine import carry_forward, ground_analysis
from app.services.clause_grounding.open_question_detector import OpenQuestionDetector

__all__ = [
    "CitationResolver",
    "ResolverConfig",
    "compare_analyses",
    "carry_forward",
    "ground_analysis",
    "OpenQuestionDetector",
]
