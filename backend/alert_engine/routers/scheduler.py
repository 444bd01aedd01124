"""
Scheduler API Routes

Internal endpoints for the cron collaborator.
Expiration sweeps and upcoming-date monitoring.
"""
import os
from datetime import date, datetime, time, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.alerts import ExpirationScanner, EntityRepository


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/expiration-sweep", response_model=dict)
async def run_expiration_sweep(
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Run one lease expiration / debt maturity sweep.

    Safe to call while another sweep is running; the alert ledger keeps
    each threshold to a single notice. `as_of` replays the sweep for a
    given day (defaults to today, UTC).
    """
    now = None
    if as_of is not None:
        now = datetime.combine(as_of, time.min, tzinfo=timezone.utc)

    scanner = ExpirationScanner(db)
    return scanner.run_sweep(now=now)


# =============================================================================
# STATUS ENDPOINTS (READ-ONLY)
# =============================================================================

@router.get("/upcoming", response_model=dict)
async def get_upcoming_target_dates(
    days_ahead: int = 90,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Get monitored leases/debts whose end or maturity date is within N days.
    """
    if days_ahead < 0:
        raise HTTPException(status_code=400, detail="days_ahead must be non-negative")

    today = datetime.now(timezone.utc).date()
    repository = EntityRepository(db)
    upcoming = repository.upcoming(today, days_ahead)

    return {
        "days_ahead": days_ahead,
        "count": len(upcoming),
        "entities": upcoming,
    }
