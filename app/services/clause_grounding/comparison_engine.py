"""Diff two grounded analyses of the same scenario."""

from typing import Dict, List, Tuple

from app.schemas.clause_grounding import (
    AnalysisComparison,
    ChangeType,
    CitedConclusion,
    ComparisonStats,
    ConclusionDelta,
    ConclusionType,
    GroundedAnalysisSide,
    OpenQuestion,
    OpenQuestionCategory,
    QuestionDelta,
)

ConclusionKey = Tuple[ConclusionType, str]
QuestionKey = Tuple[OpenQuestionCategory, str]


def _conclusion_map(conclusions: List[CitedConclusion]) -> Dict[ConclusionKey, CitedConclusion]:
    # First occurrence wins for repeated (type, statement) pairs
    mapped: Dict[ConclusionKey, CitedConclusion] = {}
    for conclusion in conclusions:
        mapped.setdefault((conclusion.type, conclusion.statement), conclusion)
    return mapped


def _question_map(questions: List[OpenQuestion]) -> Dict[QuestionKey, OpenQuestion]:
    mapped: Dict[QuestionKey, OpenQuestion] = {}
    for question in questions:
        mapped.setdefault((question.category, question.question), question)
    return mapped


def citation_signature(conclusion: CitedConclusion) -> Tuple[Tuple[str, int, str, str], ...]:
    """Order-insensitive identity of a conclusion's citation set."""
    return tuple(sorted(
        (c.form_version_id, c.chunk_index, c.excerpt_hash, c.relevance.value)
        for c in conclusion.citations
    ))


def _conclusion_deltas(left: List[CitedConclusion], right: List[CitedConclusion]) -> List[ConclusionDelta]:
    left_map = _conclusion_map(left)
    right_map = _conclusion_map(right)
    deltas: List[ConclusionDelta] = []

    for key, current in right_map.items():
        previous = left_map.get(key)
        if previous is None:
            change_type = ChangeType.ADDED
        elif (
            previous.confidence != current.confidence
            or citation_signature(previous) != citation_signature(current)
        ):
            change_type = ChangeType.CHANGED
        else:
            change_type = ChangeType.UNCHANGED

        deltas.append(ConclusionDelta(
            conclusion_id=current.id,
            type=current.type,
            statement=current.statement,
            change_type=change_type,
            previous_confidence=previous.confidence if change_type == ChangeType.CHANGED else None,
        ))

    for key, previous in left_map.items():
        if key not in right_map:
            deltas.append(ConclusionDelta(
                conclusion_id=previous.id,
                type=previous.type,
                statement=previous.statement,
                change_type=ChangeType.REMOVED,
            ))

    return deltas


def _question_deltas(left: List[OpenQuestion], right: List[OpenQuestion]) -> List[QuestionDelta]:
    left_map = _question_map(left)
    right_map = _question_map(right)
    deltas: List[QuestionDelta] = []

    for key, current in right_map.items():
        previous = left_map.get(key)
        if previous is None:
            deltas.append(QuestionDelta(
                question_id=current.id,
                question=current.question,
                change_type=ChangeType.ADDED,
            ))
            continue
        changed = (previous.resolved, previous.resolution) != (current.resolved, current.resolution)
        deltas.append(QuestionDelta(
            question_id=current.id,
            question=current.question,
            change_type=ChangeType.CHANGED if changed else ChangeType.UNCHANGED,
            newly_resolved=current.resolved and not previous.resolved,
        ))

    # A question that disappears while still open counts as resolved
    for key, previous in left_map.items():
        if key not in right_map:
            deltas.append(QuestionDelta(
                question_id=previous.id,
                question=previous.question,
                change_type=ChangeType.REMOVED,
                newly_resolved=not previous.resolved,
            ))

    return deltas


def compare_analyses(left: GroundedAnalysisSide, right: GroundedAnalysisSide) -> AnalysisComparison:
    """Structured delta from ``left`` (earlier) to ``right`` (later).

    Conclusions are matched by (type, statement); a matched pair whose
    confidence or citation set differs is ``changed``. Pure function.
    """
    conclusion_deltas = _conclusion_deltas(left.grounded.conclusions, right.grounded.conclusions)
    question_deltas = _question_deltas(left.grounded.open_questions, right.grounded.open_questions)

    def count(deltas, change_type: ChangeType) -> int:
        return sum(1 for delta in deltas if delta.change_type == change_type)

    stats = ComparisonStats(
        conclusions_added=count(conclusion_deltas, ChangeType.ADDED),
        conclusions_removed=count(conclusion_deltas, ChangeType.REMOVED),
        conclusions_changed=count(conclusion_deltas, ChangeType.CHANGED),
        conclusions_unchanged=count(conclusion_deltas, ChangeType.UNCHANGED),
        questions_resolved=sum(1 for delta in question_deltas if delta.newly_resolved),
        questions_added=count(question_deltas, ChangeType.ADDED),
        questions_removed=count(question_deltas, ChangeType.REMOVED),
    )

    return AnalysisComparison(
        left_analysis_id=left.id,
        right_analysis_id=right.id,
        left_version=left.grounded.analysis_version,
        right_version=right.grounded.analysis_version,
        determination_changed=left.determination != right.determination,
        left_determination=left.determination,
        right_determination=right.determination,
        conclusion_deltas=conclusion_deltas,
        question_deltas=question_deltas,
        stats=stats,
    )
