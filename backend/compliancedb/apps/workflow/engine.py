from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from compliancedb.apps.audit import services as audit_services

from .registry import WORKFLOWS, Transition


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Dict[str, str]]


def get_transition(entity_type: str, action: str) -> Transition:
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )
    transition = workflow["actions"].get(action)
    if transition is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "action", "reason": f"Unknown action {action}"}],
        )
    return transition


def resolve_transition(
    entity_type: str,
    *,
    action: str,
    actor: str,
    from_state: Optional[str],
) -> Transition:
    """
    Pure transition check: return the transition for `action` when `actor`
    may perform it from `from_state`, raise TransitionError otherwise.
    """
    transition = get_transition(entity_type, action)

    if actor not in transition.actors:
        raise TransitionError(
            code="forbidden_actor",
            detail=[{"field": "actor", "reason": f"{actor} cannot perform {action}"}],
        )

    if from_state not in transition.from_states:
        raise TransitionError(
            code="invalid_transition",
            detail=[
                {
                    "field": "status",
                    "reason": f"Cannot {action} from {from_state or 'no entry'}",
                }
            ],
        )
    return transition


def record_transition(
    db: Session,
    *,
    actor_account_id: Optional[str],
    entity_type: str,
    entity_id: str,
    transition: Transition,
    from_state: Optional[str],
    before_obj: Optional[Dict[str, Any]] = None,
    after_obj: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> None:
    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": transition.to_state}
    if before_obj:
        before_payload.update(before_obj)
    if after_obj:
        after_payload.update(after_obj)

    audit_services.log_event(
        db,
        actor_account_id=actor_account_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=transition.action,
        before=before_payload,
        after=after_payload,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )
