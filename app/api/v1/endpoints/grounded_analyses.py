"""Clause-grounded analysis API endpoints.

Grounding anchors every conclusion of a claims analysis to verbatim excerpts
of the ingested forms, raises open questions and instantiates the decision
gates reviewers work through. Service errors are mapped to HTTP responses by
the application's exception handlers.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_async_session as get_session
from app.core.identity import get_actor_id
from app.schemas.clause_grounding import (
    AdvanceDecisionGateRequest,
    GroundAnalysisRequest,
    ResolveOpenQuestionRequest,
)
from app.services.clause_grounding.clause_grounding_service import ClauseGroundingService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_grounding_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ClauseGroundingService:
    """Dependency for the clause grounding service."""
    return ClauseGroundingService(db_session)


@router.get(
    "/orgs/{org_id}/claims-analyses/grounding",
    response_model=dict,
    summary="List analyses with grounding status",
    operation_id="list_grounded_analyses",
)
async def list_grounded_analyses(
    request: Request,
    org_id: UUID,
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
    limit: int = Query(50, ge=1, le=200, description="Maximum number of analyses"),
) -> dict:
    summaries = await service.list_grounded_analyses(org_id, limit=limit)
    return create_api_response(
        data=summaries,
        message="Analyses retrieved successfully",
        request=request,
    )


@router.get(
    "/orgs/{org_id}/claims-analyses/compare",
    response_model=dict,
    summary="Compare two grounded analyses",
    operation_id="compare_grounded_analyses",
)
async def compare_grounded_analyses(
    request: Request,
    org_id: UUID,
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
    left_id: UUID = Query(..., description="Earlier analysis"),
    right_id: UUID = Query(..., description="Later analysis"),
) -> dict:
    """Structured delta from ``left_id`` to ``right_id``.

    Raises:
        404: either analysis not found
        409: either analysis is not grounded
    """
    comparison = await service.compare_grounded_analyses(org_id, left_id, right_id)
    return create_api_response(
        data=comparison,
        message="Analyses compared successfully",
        request=request,
    )


@router.post(
    "/orgs/{org_id}/claims-analyses/{analysis_id}/grounding",
    response_model=dict,
    summary="Ground an existing analysis",
    operation_id="ground_existing_analysis",
)
async def ground_existing_analysis(
    request: Request,
    org_id: UUID,
    analysis_id: UUID,
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
    body: Optional[GroundAnalysisRequest] = None,
) -> dict:
    """Ground an analysis and persist the grounded fields.

    Re-grounding keeps recorded gate decisions and open-question resolutions.

    Raises:
        404: analysis or prior analysis not found
        409: prior analysis is not grounded
        422: a referenced form version has no ingestion data
    """
    prior_analysis_id = body.prior_analysis_id if body else None
    grounded = await service.ground_existing_analysis(
        org_id, analysis_id, prior_analysis_id=prior_analysis_id
    )
    return create_api_response(
        data=grounded,
        message="Analysis grounded successfully",
        request=request,
    )


@router.get(
    "/orgs/{org_id}/claims-analyses/{analysis_id}/grounding",
    response_model=dict,
    summary="Get an analysis with its grounded fields",
    operation_id="get_grounded_analysis",
)
async def get_grounded_analysis(
    request: Request,
    org_id: UUID,
    analysis_id: UUID,
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
) -> dict:
    result = await service.get_grounded_analysis(org_id, analysis_id)
    return create_api_response(
        data=result,
        message="Analysis retrieved successfully",
        request=request,
    )


@router.post(
    "/orgs/{org_id}/claims-analyses/{analysis_id}/open-questions/{question_id}/resolve",
    response_model=dict,
    summary="Resolve an open question",
    operation_id="resolve_open_question",
)
async def resolve_open_question(
    request: Request,
    org_id: UUID,
    analysis_id: UUID,
    question_id: str,
    body: ResolveOpenQuestionRequest,
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
) -> dict:
    question = await service.resolve_open_question(
        org_id, analysis_id, question_id, body.resolution
    )
    return create_api_response(
        data=question,
        message="Open question resolved",
        request=request,
    )


@router.post(
    "/orgs/{org_id}/claims-analyses/{analysis_id}/decision-gates/{gate_id}",
    response_model=dict,
    summary="Advance a decision gate",
    operation_id="advance_decision_gate",
)
async def advance_decision_gate(
    request: Request,
    org_id: UUID,
    analysis_id: UUID,
    gate_id: str,
    body: AdvanceDecisionGateRequest,
    actor_id: Annotated[str, Depends(get_actor_id)],
    service: Annotated[ClauseGroundingService, Depends(get_grounding_service)],
) -> dict:
    """Record a reviewer decision (approved, rejected or needs_review).

    Decisions can race with a concurrent re-grounding; the last write wins.
    """
    gate = await service.advance_decision_gate(
        org_id, analysis_id, gate_id, body.status, actor_id, notes=body.notes
    )
    return create_api_response(
        data=gate,
        message=f"Decision gate {gate.id} set to {gate.status.value}",
        request=request,
    )
