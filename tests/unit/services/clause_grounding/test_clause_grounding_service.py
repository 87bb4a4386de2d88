"""Unit tests for ClauseGroundingService with mocked repositories."""

import logging
from uuid import uuid4

import pytest
from unittest.mock import AsyncMock

from app.core.exceptions import (
    IngestionUnavailableError,
    NotFoundError,
    NotGroundedError,
    ValidationError,
)
from app.database.models import ClaimsAnalysis
from app.schemas.clause_grounding import DecisionGateStatus
from app.services.clause_grounding.citation_resolver import ResolverConfig
from app.services.clause_grounding.clause_grounding_service import ClauseGroundingService
from app.services.clause_grounding.grounding_engine import ground_analysis

ORG_ID = uuid4()


def make_row(structured_fields, scenario, grounded_fields=None, revision=0, form_version_ids=None):
    return ClaimsAnalysis(
        id=uuid4(),
        org_id=ORG_ID,
        state_code=None,
        form_version_ids=form_version_ids if form_version_ids is not None else ["fv-cp-0010"],
        scenario=scenario.model_dump(mode="json"),
        output_markdown="The fire loss falls within Coverage A.",
        structured_fields=structured_fields.model_dump(mode="json"),
        citations=[],
        grounded_fields=grounded_fields,
        grounded_revision=revision,
    )


@pytest.fixture
def rows():
    return {}


@pytest.fixture
def service(rows, form_source, form_sections, form_chunks):
    service = ClauseGroundingService(AsyncMock(), config=ResolverConfig())

    async def get_for_org(org_id, analysis_id, for_update=False):
        row = rows.get(analysis_id)
        return row if row is not None and row.org_id == org_id else None

    async def write_grounded_fields(row, grounded_fields):
        row.grounded_fields = grounded_fields
        row.grounded_revision += 1
        return row

    async def load_form_version(org_id, form_version_id):
        if form_version_id != form_source.form_version_id:
            return None
        return form_source, form_sections, form_chunks

    service.analysis_repo = AsyncMock()
    service.analysis_repo.get_for_org.side_effect = get_for_org
    service.analysis_repo.write_grounded_fields.side_effect = write_grounded_fields
    service.analysis_repo.list_for_org.side_effect = lambda org_id, limit=50: list(rows.values())
    service.ingestion_repo = AsyncMock()
    service.ingestion_repo.load_form_version.side_effect = load_form_version
    return service


@pytest.fixture
def analysis(rows, structured_fields, fire_scenario):
    row = make_row(structured_fields, fire_scenario)
    rows[row.id] = row
    return row


@pytest.fixture
def grounded_analysis(rows, structured_fields, fire_scenario, grounding_input):
    grounded = ground_analysis(grounding_input, analysis_version=2)
    row = make_row(structured_fields, fire_scenario, grounded_fields=grounded.model_dump(mode="json"), revision=1)
    rows[row.id] = row
    return row


class TestGroundExistingAnalysis:
    @pytest.mark.asyncio
    async def test_grounds_and_persists(self, service, analysis):
        grounded = await service.ground_existing_analysis(ORG_ID, analysis.id)

        assert grounded.analysis_version == 1
        assert len(grounded.conclusions) == 2
        assert analysis.grounded_fields == grounded.model_dump(mode="json")
        assert analysis.grounded_revision == 1
        service.analysis_repo.write_grounded_fields.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_version_follows_prior_analysis(self, service, analysis, grounded_analysis):
        grounded = await service.ground_existing_analysis(
            ORG_ID, analysis.id, prior_analysis_id=str(grounded_analysis.id)
        )

        assert grounded.analysis_version == 3
        assert grounded.prior_analysis_id == str(grounded_analysis.id)

    @pytest.mark.asyncio
    async def test_prior_must_be_grounded(self, service, rows, analysis, structured_fields, fire_scenario):
        prior = make_row(structured_fields, fire_scenario)
        rows[prior.id] = prior

        with pytest.raises(NotGroundedError):
            await service.ground_existing_analysis(ORG_ID, analysis.id, prior_analysis_id=str(prior.id))
        service.analysis_repo.write_grounded_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_prior(self, service, analysis):
        with pytest.raises(NotFoundError):
            await service.ground_existing_analysis(ORG_ID, analysis.id, prior_analysis_id=str(uuid4()))

    @pytest.mark.asyncio
    async def test_prior_cannot_be_self(self, service, analysis):
        with pytest.raises(ValidationError):
            await service.ground_existing_analysis(ORG_ID, analysis.id, prior_analysis_id=str(analysis.id))

    @pytest.mark.asyncio
    async def test_analysis_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.ground_existing_analysis(ORG_ID, uuid4())

    @pytest.mark.asyncio
    async def test_other_org_cannot_see_analysis(self, service, analysis):
        with pytest.raises(NotFoundError):
            await service.ground_existing_analysis(uuid4(), analysis.id)

    @pytest.mark.asyncio
    async def test_missing_form_version_aborts(self, service, rows, structured_fields, fire_scenario):
        row = make_row(structured_fields, fire_scenario, form_version_ids=["fv-cp-0010", "fv-missing"])
        rows[row.id] = row

        with pytest.raises(IngestionUnavailableError) as exc_info:
            await service.ground_existing_analysis(ORG_ID, row.id)

        assert exc_info.value.form_version_ids == ["fv-missing"]
        assert row.grounded_fields is None
        service.analysis_repo.write_grounded_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gate_decision_survives_regrounding(self, service, analysis):
        await service.ground_existing_analysis(ORG_ID, analysis.id)
        gate = await service.advance_decision_gate(
            ORG_ID, analysis.id, "gate-causation", DecisionGateStatus.APPROVED, "adjuster-7"
        )

        regrounded = await service.ground_existing_analysis(ORG_ID, analysis.id)

        causation = next(g for g in regrounded.decision_gates if g.id == "gate-causation")
        assert causation.status == DecisionGateStatus.APPROVED
        assert causation.decided_by == "adjuster-7"
        assert causation.decided_at == gate.decided_at

    @pytest.mark.asyncio
    async def test_logs_when_revision_changes_mid_run(self, service, analysis, caplog):
        reads = []

        async def get_for_org(org_id, analysis_id, for_update=False):
            reads.append(for_update)
            if for_update:
                # Another writer committed between the read and the locked write
                analysis.grounded_revision = 5
            return analysis

        service.analysis_repo.get_for_org.side_effect = get_for_org

        with caplog.at_level(logging.WARNING):
            await service.ground_existing_analysis(ORG_ID, analysis.id)

        assert reads == [False, True]
        assert any("updated while grounding" in record.getMessage() for record in caplog.records)
        assert analysis.grounded_revision == 6

    @pytest.mark.asyncio
    async def test_plain_regrounding_keeps_version(self, service, analysis, grounded_analysis):
        linked = await service.ground_existing_analysis(
            ORG_ID, analysis.id, prior_analysis_id=str(grounded_analysis.id)
        )

        regrounded = await service.ground_existing_analysis(ORG_ID, analysis.id)

        assert linked.analysis_version == 3
        assert regrounded.analysis_version == 3
        assert regrounded.prior_analysis_id == str(grounded_analysis.id)
        assert analysis.grounded_fields["analysis_version"] == 3

    @pytest.mark.asyncio
    async def test_analysis_removed_before_write_releases_lock(self, service, analysis):
        async def get_for_org(org_id, analysis_id, for_update=False):
            return None if for_update else analysis

        service.analysis_repo.get_for_org.side_effect = get_for_org

        with pytest.raises(NotFoundError):
            await service.ground_existing_analysis(ORG_ID, analysis.id)

        service.analysis_repo.release.assert_awaited_once()
        service.analysis_repo.write_grounded_fields.assert_not_awaited()


class TestReviewerUpdates:
    @pytest.mark.asyncio
    async def test_resolve_open_question(self, service, grounded_analysis):
        question_id = grounded_analysis.grounded_fields["open_questions"][0]["id"]

        question = await service.resolve_open_question(
            ORG_ID, grounded_analysis.id, question_id, "  No flood reported by the insured.  "
        )

        assert question.resolved is True
        assert question.resolution == "No flood reported by the insured."
        stored = grounded_analysis.grounded_fields["open_questions"][0]
        assert stored["resolved"] is True
        assert grounded_analysis.grounded_revision == 2

    @pytest.mark.asyncio
    async def test_resolve_requires_text(self, service, grounded_analysis):
        with pytest.raises(ValidationError):
            await service.resolve_open_question(ORG_ID, grounded_analysis.id, "oq-any", "   ")

    @pytest.mark.asyncio
    async def test_resolve_unknown_question_releases_lock(self, service, grounded_analysis):
        with pytest.raises(NotFoundError):
            await service.resolve_open_question(ORG_ID, grounded_analysis.id, "oq-unknown", "Answered")

        service.analysis_repo.release.assert_awaited_once()
        service.analysis_repo.write_grounded_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_updates_require_grounding(self, service, analysis):
        with pytest.raises(NotGroundedError):
            await service.resolve_open_question(ORG_ID, analysis.id, "oq-any", "Answered")
        with pytest.raises(NotGroundedError):
            await service.advance_decision_gate(
                ORG_ID, analysis.id, "gate-causation", DecisionGateStatus.APPROVED, "u1"
            )

    @pytest.mark.asyncio
    async def test_advance_unknown_gate(self, service, grounded_analysis):
        with pytest.raises(NotFoundError):
            await service.advance_decision_gate(
                ORG_ID, grounded_analysis.id, "gate-unknown", DecisionGateStatus.APPROVED, "u1"
            )

    @pytest.mark.asyncio
    async def test_advance_gate_persists_decision(self, service, grounded_analysis):
        gate = await service.advance_decision_gate(
            ORG_ID, grounded_analysis.id, "gate-final-determination", DecisionGateStatus.NEEDS_REVIEW,
            "supervisor-2", notes="Await engineer report",
        )

        stored = next(
            g for g in grounded_analysis.grounded_fields["decision_gates"] if g["id"] == gate.id
        )
        assert stored["status"] == "needs_review"
        assert stored["decided_by"] == "supervisor-2"
        assert stored["notes"] == "Await engineer report"


class TestReads:
    @pytest.mark.asyncio
    async def test_get_ungrounded_analysis(self, service, analysis):
        result = await service.get_grounded_analysis(ORG_ID, analysis.id)

        assert result.analysis.id == analysis.id
        assert result.grounded is None

    @pytest.mark.asyncio
    async def test_list_grounded_analyses(self, service, analysis, grounded_analysis):
        summaries = await service.list_grounded_analyses(ORG_ID)

        status = {s.analysis.id: (s.is_grounded, s.version) for s in summaries}
        assert status == {analysis.id: (False, 0), grounded_analysis.id: (True, 2)}

    @pytest.mark.asyncio
    async def test_compare_requires_both_grounded(self, service, analysis, grounded_analysis):
        with pytest.raises(NotGroundedError):
            await service.compare_grounded_analyses(ORG_ID, grounded_analysis.id, analysis.id)

    @pytest.mark.asyncio
    async def test_compare_grounded_analyses(self, service, analysis, grounded_analysis):
        await service.ground_existing_analysis(ORG_ID, analysis.id)

        comparison = await service.compare_grounded_analyses(ORG_ID, grounded_analysis.id, analysis.id)

        assert comparison.left_version == 2
        assert comparison.right_version == 1
        assert comparison.stats.conclusions_unchanged == 2
        assert comparison.determination_changed is False
