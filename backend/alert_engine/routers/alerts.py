"""
Alert Ledger API Routes

Read the alert history and acknowledge delivered alerts.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import CurrentUser, get_current_user
from ..models.db_models import AlertLedgerDB
from ..services.alerts import AlertEntryNotFound, AlertLedgerService


router = APIRouter(prefix="/alerts", tags=["alerts"])


def _serialize(entry: AlertLedgerDB) -> dict:
    return {
        "id": entry.id,
        "entity_kind": entry.entity_kind.value,
        "entity_id": entry.entity_id,
        "alert_type": entry.alert_type.value,
        "sent_at": entry.sent_at.isoformat() if entry.sent_at else None,
        "sent_to": entry.sent_to,
        "acknowledged": entry.acknowledged,
        "acknowledged_at": entry.acknowledged_at.isoformat() if entry.acknowledged_at else None,
    }


@router.get("", response_model=dict)
async def list_my_alerts(
    acknowledged: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Alerts sent to the current user, newest first."""
    ledger = AlertLedgerService(db)
    entries = ledger.entries_for_user(current_user.id, acknowledged=acknowledged, limit=limit)
    return {
        "count": len(entries),
        "alerts": [_serialize(e) for e in entries],
    }


@router.get("/entity/{entity_id}", response_model=dict)
async def list_entity_alerts(
    entity_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Every threshold alert issued for one lease or debt."""
    ledger = AlertLedgerService(db)
    entries = ledger.entries_for_entity(entity_id)
    return {
        "entity_id": entity_id,
        "count": len(entries),
        "alerts": [_serialize(e) for e in entries],
    }


@router.put("/{alert_id}/acknowledge", response_model=dict)
async def acknowledge_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Acknowledge an alert. Acknowledging twice is a no-op.
    """
    ledger = AlertLedgerService(db)
    try:
        entry = ledger.acknowledge(alert_id)
    except AlertEntryNotFound:
        raise HTTPException(status_code=404, detail="Alert not found")

    db.commit()
    db.refresh(entry)

    return {
        "message": "Alert acknowledged",
        "alert": _serialize(entry),
    }
