"""Clause grounding service.

Wraps the pure grounding and comparison engines with persistence: loads the
analysis record and the ingestion data of every referenced form version,
computes, and stores the grounded-fields blob on the analysis row.

Gate decisions and question resolutions are read-modify-write updates of that
same blob under a row lock. A full re-grounding running concurrently can
still overwrite them (last write wins at the document level); re-grounding
logs a warning when the row changed between its read and its write.
"""

from typing import Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    IngestionUnavailableError,
    NotFoundError,
    NotGroundedError,
    ValidationError,
)
from app.database.models import ClaimsAnalysis
from app.repositories.claims_analysis_repository import ClaimsAnalysisRepository
from app.repositories.ingestion_repository import IngestionRepository
from app.schemas.claims_analysis import ClaimsAnalysisRecord
from app.schemas.clause_grounding import (
    AnalysisComparison,
    ClauseGroundedFields,
    DecisionGate,
    DecisionGateStatus,
    GroundedAnalysis,
    GroundedAnalysisSide,
    GroundedAnalysisSummary,
    GroundingInput,
    OpenQuestion,
)
from app.schemas.ingestion import FormIngestionChunk, FormIngestionSection, FormSourceSnapshot
from app.services.clause_grounding.citation_resolver import ResolverConfig
from app.services.clause_grounding.comparison_engine import compare_analyses
from app.services.clause_grounding.decision_gates import apply_gate_decision
from app.services.clause_grounding.grounding_engine import carry_forward, ground_analysis
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


def to_record(analysis: ClaimsAnalysis) -> ClaimsAnalysisRecord:
    return ClaimsAnalysisRecord.model_validate(analysis)


def parse_grounded_fields(analysis: ClaimsAnalysis) -> Optional[ClauseGroundedFields]:
    """The stored grounded-fields blob, or None if the analysis was never grounded."""
    if analysis.grounded_fields is None:
        return None
    return ClauseGroundedFields.model_validate(analysis.grounded_fields)


class ClauseGroundingService:
    """Service-level grounding operations for one org-scoped session."""

    def __init__(self, session: AsyncSession, config: Optional[ResolverConfig] = None):
        """Initialize the service.

        Args:
            session: SQLAlchemy async session
            config: Resolver tunables; defaults to the GROUNDING_* settings
        """
        self.session = session
        self.analysis_repo = ClaimsAnalysisRepository(session)
        self.ingestion_repo = IngestionRepository(session)
        self.config = config or settings.grounding.to_resolver_config()

    # ------------------------------------------------------------------
    # Grounding
    # ------------------------------------------------------------------

    async def ground_existing_analysis(
        self,
        org_id: UUID,
        analysis_id: UUID,
        prior_analysis_id: Optional[str] = None,
    ) -> ClauseGroundedFields:
        """Ground an existing analysis and persist the result.

        Args:
            org_id: Organization UUID
            analysis_id: Analysis to ground
            prior_analysis_id: Previously grounded analysis this one supersedes

        Returns:
            The persisted ClauseGroundedFields

        Raises:
            NotFoundError: analysis or prior analysis not found
            NotGroundedError: the prior analysis was never grounded
            IngestionUnavailableError: a referenced form version has no ingestion data
            PersistenceError: the write failed
        """
        LOGGER.info(
            "Grounding analysis",
            extra={
                "org_id": str(org_id),
                "analysis_id": str(analysis_id),
                "prior_analysis_id": prior_analysis_id,
            },
        )

        analysis = await self._require_analysis(org_id, analysis_id)
        read_revision = analysis.grounded_revision
        record = to_record(analysis)

        analysis_version, prior_id = await self._resolve_version(org_id, analysis_id, prior_analysis_id)
        grounding_input = await self._load_grounding_input(org_id, record)
        fresh = ground_analysis(grounding_input, analysis_version, prior_id, self.config)

        try:
            locked = await self._require_analysis(org_id, analysis_id, for_update=True)
        except NotFoundError:
            await self.analysis_repo.release()
            raise
        if locked.grounded_revision != read_revision:
            LOGGER.warning(
                "Analysis was updated while grounding; applying over the newer revision",
                extra={
                    "analysis_id": str(analysis_id),
                    "read_revision": read_revision,
                    "current_revision": locked.grounded_revision,
                },
            )

        grounded = carry_forward(fresh, parse_grounded_fields(locked))
        await self.analysis_repo.write_grounded_fields(locked, grounded.model_dump(mode="json"))

        LOGGER.info(
            "Analysis grounded",
            extra={
                "analysis_id": str(analysis_id),
                "analysis_version": grounded.analysis_version,
                "conclusions": len(grounded.conclusions),
                "open_questions": len(grounded.open_questions),
            },
        )
        return grounded

    async def _resolve_version(
        self,
        org_id: UUID,
        analysis_id: UUID,
        prior_analysis_id: Optional[str],
    ) -> Tuple[int, Optional[str]]:
        """Version 1 without a prior; otherwise the prior's version plus one."""
        if not prior_analysis_id:
            return 1, None

        try:
            prior_uuid = UUID(str(prior_analysis_id))
        except ValueError as e:
            raise NotFoundError("Claims analysis", prior_analysis_id, original_error=e)
        if prior_uuid == analysis_id:
            raise ValidationError("An analysis cannot supersede itself")

        prior = await self._require_analysis(org_id, prior_uuid)
        prior_grounded = parse_grounded_fields(prior)
        if prior_grounded is None:
            raise NotGroundedError(str(prior_uuid))
        return prior_grounded.analysis_version + 1, str(prior_uuid)

    async def _load_grounding_input(self, org_id: UUID, record: ClaimsAnalysisRecord) -> GroundingInput:
        """Load ingestion data for the analysis' form versions and its legacy citation targets.

        Form versions are loaded one after another on the shared session; all
        of them are loaded before any citation is resolved.
        """
        form_version_ids: Dict[str, None] = {}
        for form_version_id in record.form_version_ids:
            form_version_ids.setdefault(form_version_id, None)
        for citation in record.citations:
            form_version_ids.setdefault(citation.form_version_id, None)

        sources: List[FormSourceSnapshot] = []
        sections_by_form_version: Dict[str, List[FormIngestionSection]] = {}
        chunks_by_form_version: Dict[str, List[FormIngestionChunk]] = {}
        missing: List[str] = []

        for form_version_id in form_version_ids:
            bundle = await self.ingestion_repo.load_form_version(org_id, form_version_id)
            if bundle is None:
                missing.append(form_version_id)
                continue
            snapshot, sections, chunks = bundle
            sources.append(snapshot)
            sections_by_form_version[form_version_id] = sections
            chunks_by_form_version[form_version_id] = chunks

        if missing:
            raise IngestionUnavailableError(missing, detail="form version not found")

        return GroundingInput(
            structured_fields=record.structured_fields,
            existing_citations=record.citations,
            sections_by_form_version=sections_by_form_version,
            chunks_by_form_version=chunks_by_form_version,
            sources=sources,
            output_markdown=record.output_markdown,
            scenario=record.scenario,
            state_code=record.state_code,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_grounded_analysis(self, org_id: UUID, analysis_id: UUID) -> GroundedAnalysis:
        """The analysis record with its grounded fields (None if never grounded)."""
        analysis = await self._require_analysis(org_id, analysis_id)
        return GroundedAnalysis(
            analysis=to_record(analysis),
            grounded=parse_grounded_fields(analysis),
        )

    async def list_grounded_analyses(self, org_id: UUID, limit: int = 50) -> List[GroundedAnalysisSummary]:
        """Recent analyses of an org with their grounding status."""
        summaries = []
        for analysis in await self.analysis_repo.list_for_org(org_id, limit=limit):
            grounded = parse_grounded_fields(analysis)
            summaries.append(GroundedAnalysisSummary(
                analysis=to_record(analysis),
                is_grounded=grounded is not None,
                version=grounded.analysis_version if grounded else 0,
            ))
        return summaries

    async def compare_grounded_analyses(
        self,
        org_id: UUID,
        left_id: UUID,
        right_id: UUID,
    ) -> AnalysisComparison:
        """Delta from ``left_id`` to ``right_id``; both must be grounded."""
        left = await self._load_side(org_id, left_id)
        right = await self._load_side(org_id, right_id)
        comparison = compare_analyses(left, right)

        LOGGER.info(
            "Compared grounded analyses",
            extra={
                "left_id": str(left_id),
                "right_id": str(right_id),
                **comparison.stats.model_dump(),
            },
        )
        return comparison

    async def _load_side(self, org_id: UUID, analysis_id: UUID) -> GroundedAnalysisSide:
        analysis = await self._require_analysis(org_id, analysis_id)
        grounded = self._require_grounded(analysis)
        return GroundedAnalysisSide(
            id=str(analysis.id),
            determination=to_record(analysis).structured_fields.determination,
            grounded=grounded,
        )

    # ------------------------------------------------------------------
    # Reviewer updates
    # ------------------------------------------------------------------

    async def resolve_open_question(
        self,
        org_id: UUID,
        analysis_id: UUID,
        question_id: str,
        resolution: str,
    ) -> OpenQuestion:
        """Mark an open question resolved.

        Raises:
            ValidationError: resolution is blank
            NotFoundError: analysis or question not found
            NotGroundedError: the analysis was never grounded
        """
        if not resolution or not resolution.strip():
            raise ValidationError("Resolution must not be empty")

        def mutate(grounded: ClauseGroundedFields) -> OpenQuestion:
            question = next((q for q in grounded.open_questions if q.id == question_id), None)
            if question is None:
                raise NotFoundError("Open question", question_id)
            question.resolved = True
            question.resolution = resolution.strip()
            return question

        question = await self._update_grounded(org_id, analysis_id, mutate)
        LOGGER.info(
            "Open question resolved",
            extra={"analysis_id": str(analysis_id), "question_id": question_id},
        )
        return question

    async def advance_decision_gate(
        self,
        org_id: UUID,
        analysis_id: UUID,
        gate_id: str,
        status: DecisionGateStatus,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> DecisionGate:
        """Record a reviewer decision on a gate.

        Raises:
            ValidationError: status is not decidable or actor id is blank
            NotFoundError: analysis or gate not found
            NotGroundedError: the analysis was never grounded
        """
        gate = await self._update_grounded(
            org_id,
            analysis_id,
            lambda grounded: apply_gate_decision(
                grounded.decision_gates, gate_id, status, actor_id, notes
            ),
        )
        LOGGER.info(
            "Decision gate advanced",
            extra={
                "analysis_id": str(analysis_id),
                "gate_id": gate_id,
                "status": gate.status.value,
                "actor_id": gate.decided_by,
            },
        )
        return gate

    async def _update_grounded(
        self,
        org_id: UUID,
        analysis_id: UUID,
        mutate: Callable[[ClauseGroundedFields], T],
    ) -> T:
        """Apply ``mutate`` to the locked grounded-fields blob and write it back."""
        try:
            analysis = await self._require_analysis(org_id, analysis_id, for_update=True)
            grounded = self._require_grounded(analysis)
            result = mutate(grounded)
        except AppError:
            await self.analysis_repo.release()
            raise

        await self.analysis_repo.write_grounded_fields(analysis, grounded.model_dump(mode="json"))
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_analysis(
        self,
        org_id: UUID,
        analysis_id: UUID,
        for_update: bool = False,
    ) -> ClaimsAnalysis:
        analysis = await self.analysis_repo.get_for_org(org_id, analysis_id, for_update=for_update)
        if analysis is None:
            raise NotFoundError("Claims analysis", str(analysis_id))
        return analysis

    @staticmethod
    def _require_grounded(analysis: ClaimsAnalysis) -> ClauseGroundedFields:
        grounded = parse_grounded_fields(analysis)
        if grounded is None:
            raise NotGroundedError(str(analysis.id))
        return grounded
