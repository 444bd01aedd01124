"""
Alert Engine - Monitored Entity Snapshots

Plain, session-independent views of the leases and debts a sweep looks at.
The sweep and the notification copy read these, never the ORM rows, so a
snapshot stays valid after the session that loaded it has been rolled back.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from .db_models import EntityKind, TriggerType


@dataclass(frozen=True)
class MonitoredEntity:
    """A lease or debt with a target date the engine warns about."""
    kind: EntityKind
    entity_id: str
    target_date: Optional[date]
    status: str
    property_id: Optional[str] = None
    property_name: Optional[str] = None
    counterparty: Optional[str] = None  # Tenant for leases, lender for debts
    value: Optional[Decimal] = None     # Monthly rent for leases, principal for debts
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def trigger_type(self) -> TriggerType:
        if self.kind == EntityKind.LEASE:
            return TriggerType.LEASE_EXPIRATION
        return TriggerType.DEBT_MATURITY

    @property
    def is_monitorable(self) -> bool:
        """Active and dated - the only entities a sweep considers."""
        return self.status == "active" and self.target_date is not None

    def describe(self) -> Dict[str, Any]:
        """Context stored on the trigger and attached to notifications."""
        context = {
            "property_id": self.property_id,
            "property_name": self.property_name,
            "target_date": self.target_date.isoformat() if self.target_date else None,
        }
        if self.kind == EntityKind.LEASE:
            context["tenant_name"] = self.counterparty
            context["monthly_rent"] = float(self.value) if self.value is not None else None
        else:
            context["lender_name"] = self.counterparty
            context["amount"] = float(self.value) if self.value is not None else None
        context.update(self.extra)
        return context
