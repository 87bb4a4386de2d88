"""Decision gate state machine.

Every gate starts ``pending``. From any state a reviewer may move it to
``approved``, ``rejected`` or ``needs_review``; review is iterative, so those
states can be re-entered freely. Only the last decision is kept: re-deciding
overwrites decided_by, decided_at and notes.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from app.core.exceptions import NotFoundError, ValidationError
from app.schemas.clause_grounding import DecisionGate, DecisionGateStatus
from app.utils.logging import get_logger
from app.utils.text import slugify_anchor

LOGGER = get_logger(__name__)

# (name, assignee role), in display order
DEFAULT_GATES: Tuple[Tuple[str, str], ...] = (
    ("Coverage Trigger", "claims_analyst"),
    ("Exclusion Applicability", "claims_analyst"),
    ("Causation", "claims_analyst"),
    ("Jurisdiction", "coverage_counsel"),
    ("Final Determination", "claims_supervisor"),
)

DECIDABLE_STATUSES = frozenset({
    DecisionGateStatus.APPROVED,
    DecisionGateStatus.REJECTED,
    DecisionGateStatus.NEEDS_REVIEW,
})


def gate_id(name: str) -> str:
    return f"gate-{slugify_anchor(name)}"


def build_decision_gates() -> List[DecisionGate]:
    """The fixed gate set, all pending."""
    return [
        DecisionGate(id=gate_id(name), name=name, assignee_role=role)
        for name, role in DEFAULT_GATES
    ]


def preserve_gate_decisions(
    fresh: List[DecisionGate],
    existing: Optional[List[DecisionGate]],
) -> List[DecisionGate]:
    """Re-grounding must not reset decisions already recorded by reviewers.

    Fresh gates keep their order; a gate whose id was already decided takes
    the recorded decision. Gates present only in ``existing`` are appended so
    no recorded decision is dropped.
    """
    if not existing:
        return fresh

    existing_by_id: Dict[str, DecisionGate] = {gate.id: gate for gate in existing}
    merged: List[DecisionGate] = []
    for gate in fresh:
        previous = existing_by_id.pop(gate.id, None)
        merged.append(previous.model_copy(deep=True) if previous else gate)

    merged.extend(gate.model_copy(deep=True) for gate in existing if gate.id in existing_by_id)
    return merged


def apply_gate_decision(
    gates: List[DecisionGate],
    gate_id: str,
    status: DecisionGateStatus,
    actor_id: str,
    notes: Optional[str] = None,
    decided_at: Optional[datetime] = None,
) -> DecisionGate:
    """Transition one gate in place and return it.

    Raises:
        ValidationError: target status is not decidable or actor id is blank
        NotFoundError: no gate with ``gate_id``
    """
    try:
        status = DecisionGateStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown gate status: {status}", original_error=e)
    if status not in DECIDABLE_STATUSES:
        raise ValidationError(
            f"Gate status must be one of approved, rejected, needs_review (got {status.value})"
        )
    if not actor_id or not actor_id.strip():
        raise ValidationError("An actor id is required to decide a gate")

    gate = next((g for g in gates if g.id == gate_id), None)
    if gate is None:
        raise NotFoundError("Decision gate", gate_id)

    previous_status = gate.status
    gate.status = status
    gate.decided_by = actor_id.strip()
    gate.decided_at = decided_at or datetime.now(timezone.utc)
    gate.notes = notes

    LOGGER.info(
        f"Gate {gate_id} moved {previous_status.value} -> {status.value}",
        extra={"gate_id": gate_id, "actor_id": gate.decided_by},
    )
    return gate
