"""Unit tests for the pure grounding pipeline and re-grounding carry-forward."""

import pytest

from app.core.exceptions import IngestionUnavailableError
from app.schemas.claims_analysis import AnalysisCitation
from app.schemas.clause_grounding import (
    ConclusionType,
    ConfidenceLevel,
    DecisionGateStatus,
    OpenQuestionCategory,
)
from app.services.clause_grounding.decision_gates import apply_gate_decision
from app.services.clause_grounding.grounding_engine import (
    carry_forward,
    ground_analysis,
    referenced_form_version_ids,
)
from app.utils.hashing import verify_excerpt


def test_grounds_warehouse_fire_analysis(grounding_input):
    grounded = ground_analysis(grounding_input)

    assert grounded.analysis_version == 1
    assert grounded.prior_analysis_id is None

    building, flood = grounded.conclusions
    assert building.type == ConclusionType.COVERAGE_GRANT
    assert building.confidence == ConfidenceLevel.HIGH
    assert building.citations[0].anchor_slug == "section-i-coverage-a"
    assert flood.type == ConclusionType.EXCLUSION
    assert flood.citations == []
    assert flood.confidence == ConfidenceLevel.LOW
    assert [c.order for c in grounded.conclusions] == [0, 1]

    assert [(q.category, q.question) for q in grounded.open_questions] == [
        (OpenQuestionCategory.MISSING_FACT, "Was flood involved in the loss?"),
        (OpenQuestionCategory.AMBIGUOUS_CLAUSE, 'Which policy provision governs: "Flood exclusion applies"?'),
    ]
    assert all(q.affected_conclusion_ids == [flood.id] for q in grounded.open_questions)

    assert len(grounded.decision_gates) == 5
    assert all(g.status == DecisionGateStatus.PENDING for g in grounded.decision_gates)


def test_deterministic(grounding_input):
    first = ground_analysis(grounding_input, analysis_version=3, prior_analysis_id="prior-1")
    second = ground_analysis(grounding_input, analysis_version=3, prior_analysis_id="prior-1")

    assert first.model_dump_json() == second.model_dump_json()


def test_excerpt_fidelity_and_confidence_invariant(grounding_input, form_chunks):
    grounded = ground_analysis(grounding_input)
    chunk_texts = {chunk.index: chunk.text for chunk in form_chunks}

    for conclusion in grounded.conclusions:
        for citation in conclusion.citations:
            assert citation.excerpt in chunk_texts[citation.chunk_index]
            assert verify_excerpt(citation.excerpt, citation.excerpt_hash)
        if conclusion.confidence == ConfidenceLevel.HIGH:
            assert any(c.relevance.value == "direct" for c in conclusion.citations)


def test_missing_chunks_abort_grounding(grounding_input):
    grounding_input.chunks_by_form_version["fv-cp-0010"] = []

    with pytest.raises(IngestionUnavailableError) as exc_info:
        ground_analysis(grounding_input)

    assert exc_info.value.form_version_ids == ["fv-cp-0010"]


def test_legacy_citation_widens_referenced_form_versions(grounding_input):
    grounding_input.existing_citations = [
        AnalysisCitation(form_version_id="fv-il-0017", form_label="IL 00 17", section="Common Policy Conditions"),
    ]

    assert referenced_form_version_ids(grounding_input) == ["fv-cp-0010", "fv-il-0017"]
    with pytest.raises(IngestionUnavailableError) as exc_info:
        ground_analysis(grounding_input)
    assert exc_info.value.form_version_ids == ["fv-il-0017"]


class TestCarryForward:
    def test_no_existing_returns_fresh(self, grounding_input):
        fresh = ground_analysis(grounding_input)

        assert carry_forward(fresh, None) is fresh

    def test_gate_decisions_survive_regrounding(self, grounding_input):
        existing = ground_analysis(grounding_input)
        decided = apply_gate_decision(
            existing.decision_gates, "gate-coverage-trigger", DecisionGateStatus.APPROVED, "adjuster-7"
        )

        merged = carry_forward(ground_analysis(grounding_input), existing)

        gate = merged.decision_gates[0]
        assert gate.status == DecisionGateStatus.APPROVED
        assert gate.decided_by == "adjuster-7"
        assert gate.decided_at == decided.decided_at

    def test_open_questions_are_append_only(self, grounding_input):
        existing = ground_analysis(grounding_input)
        existing.open_questions[0].resolved = True
        existing.open_questions[0].resolution = "No flood; sprinkler discharge only."

        # The flood exclusion is dropped and a dated condition is added
        grounding_input.structured_fields.relevant_exclusions = []
        grounding_input.structured_fields.conditions_and_limitations = ["Loss must occur within 30 days of notice"]
        grounding_input.scenario.loss_date = None
        fresh = ground_analysis(grounding_input)

        merged = carry_forward(fresh, existing)

        questions = [q.question for q in merged.open_questions]
        assert questions[:2] == [q.question for q in existing.open_questions]
        assert "What is the date of loss?" in questions
        assert merged.open_questions[0].resolved is True
        assert merged.open_questions[0].resolution == "No flood; sprinkler discharge only."
        assert [q.order for q in merged.open_questions] == list(range(len(questions)))

    def test_tags_preserved_when_fresh_has_none(self, grounding_input):
        existing = ground_analysis(grounding_input)
        existing.tags = ["large-loss"]

        merged = carry_forward(ground_analysis(grounding_input), existing)

        assert merged.tags == ["large-loss"]

    def test_regrounding_without_prior_keeps_version_and_link(self, grounding_input):
        existing = ground_analysis(grounding_input, analysis_version=2, prior_analysis_id="prior-1")

        merged = carry_forward(ground_analysis(grounding_input), existing)

        assert merged.analysis_version == 2
        assert merged.prior_analysis_id == "prior-1"

    def test_new_prior_sets_version(self, grounding_input):
        existing = ground_analysis(grounding_input, analysis_version=2, prior_analysis_id="prior-1")

        merged = carry_forward(
            ground_analysis(grounding_input, analysis_version=4, prior_analysis_id="prior-3"), existing
        )

        assert merged.analysis_version == 4
        assert merged.prior_analysis_id == "prior-3"

    def test_stale_affected_conclusions_are_dropped(self, grounding_input):
        existing = ground_analysis(grounding_input)
        recorded = existing.open_questions[0]
        assert recorded.affected_conclusion_ids

        # The flood exclusion these questions point at is gone
        grounding_input.structured_fields.relevant_exclusions = []
        fresh = ground_analysis(grounding_input)
        assert recorded.id not in {q.id for q in fresh.open_questions}

        merged = carry_forward(fresh, existing)

        kept = next(q for q in merged.open_questions if q.id == recorded.id)
        assert kept.affected_conclusion_ids == []
