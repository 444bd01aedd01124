"""
Entity Repository

Loads leases and debts as MonitoredEntity snapshots for the sweep.
"""
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ...models.db_models import (
    LeaseDB, DebtDB, EntityKind, LeaseStatus, DebtStatus,
)
from ...models.monitored import MonitoredEntity


class EntityRepository:
    """Read-only access to the monitored leases and debts."""

    def __init__(self, db: Session):
        self.db = db

    def _active_leases(self):
        return self.db.query(LeaseDB).options(joinedload(LeaseDB.property)).filter(
            LeaseDB.status == LeaseStatus.ACTIVE,
            LeaseDB.end_date.isnot(None),
        )

    def _active_debts(self):
        return self.db.query(DebtDB).options(joinedload(DebtDB.property)).filter(
            DebtDB.status == DebtStatus.ACTIVE,
            DebtDB.maturity_date.isnot(None),
        )

    def load_monitored(self) -> List[MonitoredEntity]:
        """All active leases and debts with a target date."""
        leases = self._active_leases().all()
        debts = self._active_debts().all()
        return [self._from_lease(l) for l in leases] + [self._from_debt(d) for d in debts]

    def get(self, kind: EntityKind, entity_id: str) -> Optional[MonitoredEntity]:
        """Snapshot of one entity regardless of status, or None if gone."""
        if kind == EntityKind.LEASE:
            lease = self.db.query(LeaseDB).filter(LeaseDB.id == entity_id).first()
            return self._from_lease(lease) if lease else None
        if kind == EntityKind.DEBT:
            debt = self.db.query(DebtDB).filter(DebtDB.id == entity_id).first()
            return self._from_debt(debt) if debt else None
        return None

    def upcoming(self, today: date, days_ahead: int) -> List[Dict[str, object]]:
        """Monitored entities whose target date falls in [today, today + days_ahead]."""
        horizon = today + timedelta(days=days_ahead)

        leases = self._active_leases().filter(
            LeaseDB.end_date >= today,
            LeaseDB.end_date <= horizon,
        ).all()
        debts = self._active_debts().filter(
            DebtDB.maturity_date >= today,
            DebtDB.maturity_date <= horizon,
        ).all()

        entities = [self._from_lease(l) for l in leases] + [self._from_debt(d) for d in debts]
        results = [
            {
                "entity_kind": entity.kind.value,
                "entity_id": entity.entity_id,
                "target_date": entity.target_date.isoformat(),
                "days_remaining": (entity.target_date - today).days,
                "property_name": entity.property_name,
                "counterparty": entity.counterparty,
            }
            for entity in entities
        ]
        results.sort(key=lambda row: row["days_remaining"])
        return results

    @staticmethod
    def _from_lease(lease: LeaseDB) -> MonitoredEntity:
        prop = lease.property
        return MonitoredEntity(
            kind=EntityKind.LEASE,
            entity_id=lease.id,
            target_date=lease.end_date,
            status=lease.status.value,
            property_id=lease.property_id,
            property_name=(prop.name or prop.address) if prop else None,
            counterparty=lease.tenant_name,
            value=lease.monthly_rent,
            extra={"square_feet": lease.square_feet} if lease.square_feet else {},
        )

    @staticmethod
    def _from_debt(debt: DebtDB) -> MonitoredEntity:
        prop = debt.property
        extra = {"loan_type": debt.loan_type.value}
        if debt.interest_rate is not None:
            extra["interest_rate"] = float(debt.interest_rate)
        return MonitoredEntity(
            kind=EntityKind.DEBT,
            entity_id=debt.id,
            target_date=debt.maturity_date,
            status=debt.status.value,
            property_id=debt.property_id,
            property_name=(prop.name or prop.address) if prop else None,
            counterparty=debt.lender_name,
            value=debt.amount,
            extra=extra,
        )
