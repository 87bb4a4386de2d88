"""Decompose structured analysis fields into atomic, typed conclusions."""

from typing import List, Tuple

from app.schemas.claims_analysis import AnalysisStructuredFields
from app.schemas.clause_grounding import AtomicConclusion, ConclusionType
from app.utils.hashing import stable_id

# Emission order of conclusion types
FIELD_TYPE_MAP: Tuple[Tuple[str, ConclusionType], ...] = (
    ("applicable_coverages", ConclusionType.COVERAGE_GRANT),
    ("relevant_exclusions", ConclusionType.EXCLUSION),
    ("conditions_and_limitations", ConclusionType.CONDITION),
    ("recommendations", ConclusionType.RECOMMENDATION),
)


def conclusion_id(conclusion_type: ConclusionType, source_field_index: int, statement: str) -> str:
    return stable_id("conc", conclusion_type.value, source_field_index, statement)


def extract_conclusions(structured_fields: AnalysisStructuredFields) -> List[AtomicConclusion]:
    """One AtomicConclusion per non-blank list entry, in source order.

    ``source_field_index`` is the entry's position in its original list, so
    skipping a blank entry does not shift the ids of later entries.
    """
    conclusions: List[AtomicConclusion] = []
    for field_name, conclusion_type in FIELD_TYPE_MAP:
        for position, entry in enumerate(getattr(structured_fields, field_name)):
            statement = (entry or "").strip()
            if not statement:
                continue
            conclusions.append(
                AtomicConclusion(
                    id=conclusion_id(conclusion_type, position, statement),
                    type=conclusion_type,
                    statement=statement,
                    source_field_index=position,
                )
            )
    return conclusions
