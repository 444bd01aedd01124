"""
Alert Ledger Service

Append-only record of which threshold alerts have been issued for which entity.

Core Principles:
1. One row per (entity_id, alert_type), enforced by a unique constraint.
2. The constraint is the dedup guarantee. No application-level locking:
   racing sweeps both insert, one wins, the other sees a Conflict.
3. Rows record that an alert decision was made, independent of delivery.
4. Rows are never deleted; only the acknowledgement fields ever change.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set, Union
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import AlertLedgerDB, AlertType, EntityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conflict:
    """Another writer already recorded this (entity_id, alert_type). Not an error."""
    entity_kind: EntityKind
    entity_id: str
    alert_type: AlertType


class AlertEntryNotFound(LookupError):
    """Raised when acknowledging a ledger entry that does not exist."""
    pass


class AlertLedgerService:
    """
    Dedup ledger for threshold alerts.

    Uniqueness is keyed on entity_id alone (not entity_kind), matching the
    table constraint; entity ids are UUIDs and never collide across kinds.
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # READS
    # =========================================================================

    def has_fired(self, entity_kind: EntityKind, entity_id: str, alert_type: AlertType) -> bool:
        """Whether this threshold alert has already been recorded for the entity."""
        return self.db.query(AlertLedgerDB.id).filter(
            AlertLedgerDB.entity_id == entity_id,
            AlertLedgerDB.alert_type == alert_type,
        ).first() is not None

    def fired_types(self, entity_kind: EntityKind, entity_id: str) -> Set[AlertType]:
        """All thresholds already recorded for the entity."""
        rows = self.db.query(AlertLedgerDB.alert_type).filter(
            AlertLedgerDB.entity_id == entity_id,
        ).all()
        return {AlertType(row[0]) for row in rows}

    def entries_for_entity(self, entity_id: str) -> List[AlertLedgerDB]:
        return self.db.query(AlertLedgerDB).filter(
            AlertLedgerDB.entity_id == entity_id,
        ).order_by(AlertLedgerDB.sent_at).all()

    def entries_for_user(
        self,
        user_id: str,
        acknowledged: Optional[bool] = None,
        limit: int = 50,
    ) -> List[AlertLedgerDB]:
        query = self.db.query(AlertLedgerDB).filter(AlertLedgerDB.sent_to == user_id)
        if acknowledged is not None:
            query = query.filter(AlertLedgerDB.acknowledged == acknowledged)
        return query.order_by(AlertLedgerDB.sent_at.desc()).limit(limit).all()

    def get(self, entry_id: str) -> Optional[AlertLedgerDB]:
        return self.db.query(AlertLedgerDB).filter(AlertLedgerDB.id == entry_id).first()

    # =========================================================================
    # WRITES
    # =========================================================================

    def record(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        alert_type: AlertType,
        sent_to: str,
        sent_at: Optional[datetime] = None,
    ) -> Union[AlertLedgerDB, Conflict]:
        """
        Insert a ledger entry, or report a Conflict if one already exists.

        The insert runs inside a SAVEPOINT so a uniqueness violation only
        rolls back this row, not the caller's transaction. The entry is
        flushed, not committed; the caller owns the commit.
        """
        if not sent_to:
            raise ValueError("sent_to is required to record an alert")

        entry = AlertLedgerDB(
            id=str(uuid4()),
            entity_kind=entity_kind,
            entity_id=entity_id,
            alert_type=alert_type,
            sent_to=sent_to,
            sent_at=sent_at or datetime.utcnow(),
            acknowledged=False,
        )

        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except IntegrityError:
            logger.debug(
                f"Alert {alert_type.value} already recorded for {entity_kind.value} {entity_id}"
            )
            return Conflict(entity_kind=entity_kind, entity_id=entity_id, alert_type=alert_type)

        return entry

    def acknowledge(self, entry_id: str, at: Optional[datetime] = None) -> AlertLedgerDB:
        """
        Mark an entry acknowledged. Idempotent: a second call keeps the
        original acknowledgement time.
        """
        entry = self.get(entry_id)
        if entry is None:
            raise AlertEntryNotFound(f"Alert ledger entry {entry_id} not found")

        if entry.acknowledged:
            return entry

        entry.acknowledged = True
        entry.acknowledged_at = at or datetime.utcnow()
        self.db.flush()
        return entry
