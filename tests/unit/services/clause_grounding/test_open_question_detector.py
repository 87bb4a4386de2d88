"""Unit tests for open question detection."""

from app.schemas.claims_analysis import (
    AnalysisStructuredFields,
    ClaimScenario,
    CoverageDetermination,
)
from app.schemas.clause_grounding import (
    Citation,
    CitationRelevance,
    CitedConclusion,
    ConclusionType,
    ConfidenceLevel,
    GroundingInput,
    OpenQuestionCategory,
)
from app.schemas.ingestion import FormSourceSnapshot
from app.services.clause_grounding.open_question_detector import (
    OpenQuestionDetector,
    coverage_effect,
    location_matches,
)
from app.utils.hashing import hash_excerpt


def _citation(form_version_id="fv-1", section_path="Section I — Coverage A", chunk_index=3):
    excerpt = "We will pay for direct physical loss."
    return Citation(
        form_version_id=form_version_id,
        form_label="CP 00 10 10/12",
        section_path=section_path,
        anchor_slug="section-i-coverage-a",
        page=2,
        chunk_index=chunk_index,
        excerpt=excerpt,
        excerpt_hash=hash_excerpt(excerpt),
        relevance=CitationRelevance.DIRECT,
    )


def _conclusion(
    conclusion_id,
    statement,
    conclusion_type=ConclusionType.COVERAGE_GRANT,
    confidence=ConfidenceLevel.HIGH,
    citations=None,
):
    if citations is None:
        citations = [_citation()] if confidence != ConfidenceLevel.LOW else []
    return CitedConclusion(
        id=conclusion_id,
        order=0,
        type=conclusion_type,
        statement=statement,
        reasoning="",
        confidence=confidence,
        citations=citations,
    )


def _input(scenario=None, determination=CoverageDetermination.COVERED, markdown="", sources=None, state_code=None):
    return GroundingInput(
        structured_fields=AnalysisStructuredFields(determination=determination),
        scenario=scenario or ClaimScenario(
            loss_date="2024-03-01",
            estimated_damages=1000,
            facts_narrative="A fire damaged the warehouse roof.",
            cause_of_loss="fire",
        ),
        output_markdown=markdown,
        sources=sources or [],
        state_code=state_code,
    )


def _categories(questions):
    return [q.category for q in questions]


class TestMissingFacts:
    def test_named_peril_absent_from_scenario(self):
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", "Flood exclusion applies", ConclusionType.EXCLUSION)],
            _input(),
        )

        flood = [q for q in questions if q.question == "Was flood involved in the loss?"]
        assert len(flood) == 1
        assert flood[0].category == OpenQuestionCategory.MISSING_FACT
        assert flood[0].affected_conclusion_ids == ["c1"]

    def test_peril_stated_in_scenario_raises_nothing(self):
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", "Fire is a covered cause of loss")],
            _input(),
        )

        assert questions == []

    def test_dollar_and_date_dependencies(self):
        scenario = ClaimScenario(facts_narrative="Water came through the ceiling.")
        questions = OpenQuestionDetector().detect(
            [
                _conclusion("c1", "The $5,000 deductible applies"),
                _conclusion("c2", "Loss must occur during the policy period", ConclusionType.CONDITION),
            ],
            _input(scenario=scenario),
        )

        texts = [q.question for q in questions]
        assert "What is the estimated dollar amount of the loss?" in texts
        assert "What is the date of loss?" in texts

    def test_insufficient_information_determination(self):
        questions = OpenQuestionDetector().detect(
            [],
            _input(determination=CoverageDetermination.INSUFFICIENT_INFORMATION),
        )

        assert _categories(questions) == [OpenQuestionCategory.MISSING_FACT]

    def test_follow_up_recommendation(self):
        statement = "Obtain the fire department report"
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", statement, ConclusionType.RECOMMENDATION, citations=[])],
            _input(),
        )

        assert questions[0].question == statement
        assert questions[0].category == OpenQuestionCategory.MISSING_FACT


class TestAmbiguousClauses:
    def test_low_confidence_conclusion(self):
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", "Ordinance or law coverage applies", confidence=ConfidenceLevel.LOW)],
            _input(),
        )

        assert questions[0].category == OpenQuestionCategory.AMBIGUOUS_CLAUSE
        assert questions[0].question == 'Which policy provision governs: "Ordinance or law coverage applies"?'
        assert questions[0].impact

    def test_uncertainty_in_markdown(self):
        markdown = "## Analysis\n- It is unclear whether the roof was maintained.\nCoverage applies."
        questions = OpenQuestionDetector().detect([], _input(markdown=markdown))

        assert [q.question for q in questions] == ["It is unclear whether the roof was maintained."]


class TestConflictingProvisions:
    def test_opposite_effects_on_shared_section(self):
        conclusions = [
            _conclusion("c1", "Water damage to the building is covered"),
            _conclusion("c2", "Water damage exclusion applies", ConclusionType.EXCLUSION),
        ]

        questions = OpenQuestionDetector().detect(conclusions, _input())

        conflicts = [q for q in questions if q.category == OpenQuestionCategory.CONFLICTING_PROVISIONS]
        assert len(conflicts) == 1
        assert conflicts[0].affected_conclusion_ids == ["c1", "c2"]
        assert "Section I — Coverage A" in conflicts[0].question

    def test_different_sections_do_not_conflict(self):
        conclusions = [
            _conclusion("c1", "Water damage to the building is covered"),
            _conclusion(
                "c2",
                "Water damage exclusion applies",
                ConclusionType.EXCLUSION,
                citations=[_citation(section_path="Section II — Exclusions", chunk_index=9)],
            ),
        ]

        questions = OpenQuestionDetector().detect(conclusions, _input())

        assert OpenQuestionCategory.CONFLICTING_PROVISIONS not in _categories(questions)

    def test_coverage_effect(self):
        assert coverage_effect(_conclusion("c", "Coverage applies")) == 1
        assert coverage_effect(_conclusion("c", "Coverage does not apply")) == -1
        assert coverage_effect(_conclusion("c", "Exclusion applies", ConclusionType.EXCLUSION)) == -1
        assert coverage_effect(_conclusion("c", "Review", ConclusionType.RECOMMENDATION)) is None


class TestJurisdictional:
    def test_cited_form_not_declared_for_state(self):
        sources = [FormSourceSnapshot(form_id="f", form_version_id="fv-1", jurisdictions=["NY", "NJ"])]
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", "Building coverage applies")],
            _input(sources=sources, state_code="TX"),
        )

        assert _categories(questions) == [OpenQuestionCategory.JURISDICTIONAL]
        assert "TX" in questions[0].question
        assert questions[0].affected_conclusion_ids == ["c1"]

    def test_declared_state_raises_nothing(self):
        sources = [FormSourceSnapshot(form_id="f", form_version_id="fv-1", jurisdictions=["TX"])]
        questions = OpenQuestionDetector().detect(
            [_conclusion("c1", "Building coverage applies")],
            _input(sources=sources, state_code="TX"),
        )

        assert questions == []

    def test_location_matches(self):
        assert location_matches("Austin, TX", ["TX"])
        assert location_matches("Anywhere", ["ALL"])
        assert not location_matches("Austin, TX", ["NY"])


def test_deduplicates_and_orders_questions():
    conclusions = [
        _conclusion("c1", "Flood exclusion applies", ConclusionType.EXCLUSION, confidence=ConfidenceLevel.LOW),
        _conclusion("c2", "Flood damage is excluded", ConclusionType.EXCLUSION, confidence=ConfidenceLevel.LOW),
    ]

    questions = OpenQuestionDetector().detect(conclusions, _input())

    flood = [q for q in questions if q.question == "Was flood involved in the loss?"]
    assert len(flood) == 1
    assert flood[0].affected_conclusion_ids == ["c1", "c2"]
    assert [q.order for q in questions] == list(range(len(questions)))
    assert all(not q.resolved for q in questions)
