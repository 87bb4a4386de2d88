"""Clause-grounding pipeline.

Pure computation over already-loaded data, no I/O:

    1. Build one anchor index per referenced form version
    2. Extract atomic conclusions from the structured fields
    3. Resolve citations for each conclusion across all form versions jointly
    4. Detect open questions
    5. Instantiate the decision gates

The service layer loads inputs, carries forward reviewer state on
re-grounding and persists the result.
"""

from typing import Dict, List, Optional

from app.core.exceptions import IngestionUnavailableError
from app.schemas.clause_grounding import (
    ClauseGroundedFields,
    GroundingInput,
    OpenQuestion,
)
from app.services.clause_grounding.anchor_index import AnchorIndex, build_anchor_index
from app.services.clause_grounding.citation_resolver import CitationResolver, ResolverConfig
from app.services.clause_grounding.conclusion_extractor import extract_conclusions
from app.services.clause_grounding.decision_gates import (
    build_decision_gates,
    preserve_gate_decisions,
)
from app.services.clause_grounding.open_question_detector import OpenQuestionDetector
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def referenced_form_version_ids(grounding_input: GroundingInput) -> List[str]:
    """Form versions the analysis relies on: its sources plus any legacy citation targets."""
    ids: Dict[str, None] = {}
    for source in grounding_input.sources:
        ids.setdefault(source.form_version_id, None)
    for citation in grounding_input.existing_citations:
        ids.setdefault(citation.form_version_id, None)
    return list(ids)


def build_anchor_indexes(grounding_input: GroundingInput) -> List[AnchorIndex]:
    """One index per referenced form version.

    Raises:
        IngestionUnavailableError: any referenced form version lacks a source
            snapshot, sections or chunks
    """
    sources = {source.form_version_id: source for source in grounding_input.sources}
    missing: List[str] = []
    indexes: List[AnchorIndex] = []

    for form_version_id in referenced_form_version_ids(grounding_input):
        source = sources.get(form_version_id)
        sections = grounding_input.sections_by_form_version.get(form_version_id) or []
        chunks = grounding_input.chunks_by_form_version.get(form_version_id) or []
        if source is None or not sections or not chunks:
            missing.append(form_version_id)
            continue
        indexes.append(build_anchor_index(source, sections, chunks))

    if missing:
        raise IngestionUnavailableError(missing)
    return indexes


def ground_analysis(
    grounding_input: GroundingInput,
    analysis_version: int = 1,
    prior_analysis_id: Optional[str] = None,
    config: Optional[ResolverConfig] = None,
) -> ClauseGroundedFields:
    """Run the full grounding pipeline.

    Deterministic: identical input and version produce identical output,
    including conclusion ids and citation order.

    Args:
        grounding_input: Analysis fields plus loaded ingestion data
        analysis_version: Version number assigned by the caller
        prior_analysis_id: Analysis this grounding supersedes, if any
        config: Resolver tunables (defaults if omitted)

    Returns:
        ClauseGroundedFields with all gates pending

    Raises:
        IngestionUnavailableError: a referenced form version has no ingestion data
    """
    indexes = build_anchor_indexes(grounding_input)
    resolver = CitationResolver(indexes, config)

    atomic = extract_conclusions(grounding_input.structured_fields)
    conclusions = [resolver.resolve(conclusion, order) for order, conclusion in enumerate(atomic)]
    open_questions = OpenQuestionDetector().detect(conclusions, grounding_input)

    LOGGER.info(
        "Grounded analysis",
        extra={
            "analysis_version": analysis_version,
            "form_versions": len(indexes),
            "conclusions": len(conclusions),
            "cited_conclusions": sum(1 for c in conclusions if c.citations),
            "open_questions": len(open_questions),
        },
    )

    return ClauseGroundedFields(
        analysis_version=analysis_version,
        prior_analysis_id=prior_analysis_id,
        conclusions=conclusions,
        open_questions=open_questions,
        decision_gates=build_decision_gates(),
    )


def carry_forward(
    fresh: ClauseGroundedFields,
    existing: Optional[ClauseGroundedFields],
) -> ClauseGroundedFields:
    """Merge reviewer state from a previous grounding of the same analysis.

    Gate decisions are preserved. Open questions are append-only: every
    previously recorded question is kept with its resolution, questions
    detected again refresh their affected conclusions, and new questions are
    appended after the recorded ones. Without a new prior analysis the stored
    version and prior link are kept, so the version never goes down.
    """
    if existing is None:
        return fresh

    fresh_questions = {question.id: question for question in fresh.open_questions}
    current_conclusion_ids = {conclusion.id for conclusion in fresh.conclusions}
    merged_questions: List[OpenQuestion] = []
    seen = set()

    for previous in existing.open_questions:
        question = previous.model_copy(deep=True)
        redetected = fresh_questions.get(question.id)
        if redetected is not None:
            question.affected_conclusion_ids = list(redetected.affected_conclusion_ids)
        else:
            question.affected_conclusion_ids = [
                conclusion_id for conclusion_id in question.affected_conclusion_ids
                if conclusion_id in current_conclusion_ids
            ]
        merged_questions.append(question)
        seen.add(question.id)

    merged_questions.extend(
        question.model_copy(deep=True)
        for question in fresh.open_questions
        if question.id not in seen
    )
    for order, question in enumerate(merged_questions):
        question.order = order

    update = {}
    if fresh.prior_analysis_id is None:
        update["analysis_version"] = max(fresh.analysis_version, existing.analysis_version)
        update["prior_analysis_id"] = existing.prior_analysis_id

    return fresh.model_copy(
        update={
            **update,
            "open_questions": merged_questions,
            "decision_gates": preserve_gate_decisions(fresh.decision_gates, existing.decision_gates),
            "tags": list(fresh.tags or existing.tags),
        }
    )
