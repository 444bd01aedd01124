"""
Trigger API Routes

User-facing view of expiration/maturity triggers: list, inspect, dismiss, action.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import CurrentUser, get_current_user
from ..models.db_models import (
    EntityKind, TriggerDB, TriggerPriority, TriggerStatus, TriggerType,
)
from ..services.alerts import InvalidTransition, TriggerNotFound, TriggerStore


router = APIRouter(prefix="/triggers", tags=["triggers"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class TriggerEventEntry(BaseModel):
    """Trigger transition log entry."""
    from_status: Optional[str]
    to_status: str
    actor: str
    actor_id: Optional[str]
    reason: str
    timestamp: str


class TriggerResponse(BaseModel):
    """Standard trigger response."""
    id: str
    type: str
    entity_kind: str
    entity_id: str
    trigger_date: str
    priority: str
    status: str
    metadata: Optional[dict]
    created_at: Optional[str]
    updated_at: Optional[str]
    resolved_at: Optional[str]


def _to_response(trigger: TriggerDB) -> TriggerResponse:
    return TriggerResponse(
        id=trigger.id,
        type=trigger.type.value,
        entity_kind=trigger.entity_kind.value,
        entity_id=trigger.entity_id,
        trigger_date=trigger.trigger_date.isoformat(),
        priority=trigger.priority.value,
        status=trigger.status.value,
        metadata=trigger.trigger_metadata,
        created_at=trigger.created_at.isoformat() if trigger.created_at else None,
        updated_at=trigger.updated_at.isoformat() if trigger.updated_at else None,
        resolved_at=trigger.resolved_at.isoformat() if trigger.resolved_at else None,
    )


# =============================================================================
# QUERY ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_triggers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[TriggerType] = None,
    status: Optional[TriggerStatus] = None,
    priority: Optional[TriggerPriority] = None,
    entity_kind: Optional[EntityKind] = None,
    entity_id: Optional[str] = None,
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    List triggers with filtering, ordered by trigger date.
    """
    store = TriggerStore(db)
    rows, total = store.search(
        type=type,
        status=status,
        priority=priority,
        entity_kind=entity_kind,
        entity_id=entity_id,
        descending=sort_order == "desc",
        offset=(page - 1) * limit,
        limit=limit,
    )

    return {
        "triggers": [_to_response(t).model_dump() for t in rows],
        "pagination": {
            "current_page": page,
            "total_pages": (total + limit - 1) // limit,
            "total_items": total,
            "items_per_page": limit,
        },
    }


@router.get("/{trigger_id}", response_model=dict)
async def get_trigger(
    trigger_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Get a single trigger with its transition log.
    """
    store = TriggerStore(db)
    trigger = store.get(trigger_id)
    if trigger is None:
        raise HTTPException(status_code=404, detail="Trigger not found")

    timeline: List[TriggerEventEntry] = [
        TriggerEventEntry(
            from_status=e.from_status.value if e.from_status else None,
            to_status=e.to_status.value,
            actor=e.actor.value,
            actor_id=e.actor_id,
            reason=e.reason,
            timestamp=e.created_at.isoformat() if e.created_at else "",
        )
        for e in trigger.events
    ]

    return {
        "trigger": _to_response(trigger).model_dump(),
        "timeline": [entry.model_dump() for entry in timeline],
    }


# =============================================================================
# USER-AUTHORIZED COMMANDS
# =============================================================================

@router.put("/{trigger_id}/dismiss", response_model=dict)
async def dismiss_trigger(
    trigger_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Dismiss a trigger. Terminal triggers are rejected with 409.
    """
    store = TriggerStore(db)
    try:
        trigger = store.dismiss(trigger_id, actor_id=current_user.id)
    except TriggerNotFound:
        raise HTTPException(status_code=404, detail="Trigger not found")
    except InvalidTransition as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    db.commit()
    db.refresh(trigger)

    return {
        "message": "Trigger dismissed successfully",
        "trigger": _to_response(trigger).model_dump(),
    }


@router.put("/{trigger_id}/action", response_model=dict)
async def action_trigger(
    trigger_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Mark a trigger as actioned. Terminal triggers are rejected with 409.
    """
    store = TriggerStore(db)
    try:
        trigger = store.mark_actioned(trigger_id, actor_id=current_user.id)
    except TriggerNotFound:
        raise HTTPException(status_code=404, detail="Trigger not found")
    except InvalidTransition as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    db.commit()
    db.refresh(trigger)

    return {
        "message": "Trigger marked as actioned successfully",
        "trigger": _to_response(trigger).model_dump(),
    }
