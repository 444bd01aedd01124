"""
Trigger Store

One open "needs attention" trigger per monitored entity, with a
forward-only status lifecycle:

    pending → active → {dismissed, actioned}

dismissed and actioned are terminal. Every transition is written to
trigger_events.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import (
    TriggerDB, TriggerEventDB, TriggerType, TriggerPriority, TriggerStatus,
    EntityKind, ActorType, OPEN_TRIGGER_STATUSES,
)

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS CONFIGURATION
# =============================================================================

STATUS_CONFIG = {
    TriggerStatus.PENDING: {
        "description": "Threshold crossed, no alert delivered yet",
        "allowed_transitions": [
            TriggerStatus.ACTIVE,
            TriggerStatus.DISMISSED,
            TriggerStatus.ACTIONED,
        ],
    },
    TriggerStatus.ACTIVE: {
        "description": "At least one alert delivered, awaiting user action",
        "allowed_transitions": [
            TriggerStatus.DISMISSED,
            TriggerStatus.ACTIONED,
        ],
    },
    TriggerStatus.DISMISSED: {
        "description": "User dismissed the concern",
        "allowed_transitions": [],  # Terminal state
    },
    TriggerStatus.ACTIONED: {
        "description": "Concern handled (by a user, or resolved at the source)",
        "allowed_transitions": [],  # Terminal state
    },
}


class InvalidTransition(Exception):
    """Raised when a command targets a trigger that cannot make the move."""

    def __init__(self, trigger_id: str, from_status: TriggerStatus, to_status: TriggerStatus):
        self.trigger_id = trigger_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition trigger {trigger_id} from {from_status.value} to {to_status.value}"
        )


class TriggerNotFound(LookupError):
    """Raised when a trigger id does not exist."""
    pass


class TriggerStore:
    """
    Persistence and lifecycle for triggers.

    find_or_create is safe under concurrent sweeps: the partial unique
    index on open triggers decides the winner, and the loser re-fetches
    the winner's row and updates it.
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, trigger_id: str, for_update: bool = False) -> Optional[TriggerDB]:
        query = self.db.query(TriggerDB).filter(TriggerDB.id == trigger_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_open(self, entity_kind: EntityKind, entity_id: str) -> Optional[TriggerDB]:
        """The pending/active trigger for an entity, if any."""
        return self.db.query(TriggerDB).filter(
            TriggerDB.entity_kind == entity_kind,
            TriggerDB.entity_id == entity_id,
            TriggerDB.status.in_(OPEN_TRIGGER_STATUSES),
        ).first()

    def list_open(self, types: Optional[List[TriggerType]] = None) -> List[TriggerDB]:
        query = self.db.query(TriggerDB).filter(TriggerDB.status.in_(OPEN_TRIGGER_STATUSES))
        if types:
            query = query.filter(TriggerDB.type.in_(types))
        return query.all()

    def search(
        self,
        type: Optional[TriggerType] = None,
        status: Optional[TriggerStatus] = None,
        priority: Optional[TriggerPriority] = None,
        entity_kind: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[TriggerDB], int]:
        """Filtered, paginated trigger listing ordered by trigger_date."""
        query = self.db.query(TriggerDB)
        if type:
            query = query.filter(TriggerDB.type == type)
        if status:
            query = query.filter(TriggerDB.status == status)
        if priority:
            query = query.filter(TriggerDB.priority == priority)
        if entity_kind:
            query = query.filter(TriggerDB.entity_kind == entity_kind)
        if entity_id:
            query = query.filter(TriggerDB.entity_id == entity_id)

        total = query.count()
        order = TriggerDB.trigger_date.desc() if descending else TriggerDB.trigger_date.asc()
        rows = query.order_by(order, TriggerDB.created_at).offset(offset).limit(limit).all()
        return rows, total

    # =========================================================================
    # CREATION
    # =========================================================================

    def find_or_create(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        type: TriggerType,
        trigger_date: date,
        priority: TriggerPriority,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Tuple[TriggerDB, bool]:
        """
        Return the entity's open trigger, creating it if none exists.

        An existing open trigger gets the re-derived priority, trigger date
        and metadata. Returns (trigger, created).
        """
        existing = self.get_open(entity_kind, entity_id)
        if existing is not None:
            self._refresh(existing, trigger_date, priority, metadata)
            return existing, False

        trigger = TriggerDB(
            id=str(uuid4()),
            type=type,
            entity_kind=entity_kind,
            entity_id=entity_id,
            trigger_date=trigger_date,
            priority=priority,
            status=TriggerStatus.PENDING,
            trigger_metadata=metadata or {},
        )

        try:
            with self.db.begin_nested():
                self.db.add(trigger)
                self.db.flush()
                self._log_event(trigger, None, TriggerStatus.PENDING, "threshold_crossed", ActorType.SYSTEM)
                self.db.flush()
        except IntegrityError:
            logger.debug(f"Open trigger for {entity_kind.value} {entity_id} created concurrently, re-fetching")
            existing = self.get_open(entity_kind, entity_id)
            if existing is None:
                raise
            self._refresh(existing, trigger_date, priority, metadata)
            return existing, False

        logger.debug(f"Created trigger {trigger.id} for {entity_kind.value} {entity_id} ({priority.value})")
        return trigger, True

    def _refresh(
        self,
        trigger: TriggerDB,
        trigger_date: date,
        priority: TriggerPriority,
        metadata: Optional[Dict[str, Any]],
    ) -> None:
        trigger.trigger_date = trigger_date
        trigger.priority = priority
        if metadata is not None:
            trigger.trigger_metadata = metadata
        trigger.updated_at = datetime.utcnow()
        self.db.flush()

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def can_transition(self, from_status: TriggerStatus, to_status: TriggerStatus) -> Tuple[bool, str]:
        allowed = STATUS_CONFIG.get(from_status, {}).get("allowed_transitions", [])
        if to_status in allowed:
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_status.value} to {to_status.value}"

    def is_terminal_status(self, status: TriggerStatus) -> bool:
        return len(STATUS_CONFIG[status]["allowed_transitions"]) == 0

    def activate(self, trigger_id: str) -> Tuple[bool, str]:
        """
        pending → active, once an alert has been delivered.

        Not fatal when the trigger is already terminal (a user dismissed it
        mid-sweep): logged and reported as (False, reason).
        """
        trigger = self._require(trigger_id, for_update=True)

        if trigger.status == TriggerStatus.ACTIVE:
            return True, "Already active"

        allowed, reason = self.can_transition(trigger.status, TriggerStatus.ACTIVE)
        if not allowed:
            logger.warning(f"Trigger {trigger_id} not activated: {reason}")
            return False, reason

        self._apply(trigger, TriggerStatus.ACTIVE, "alert_delivered", ActorType.SYSTEM)
        return True, f"Transitioned to {TriggerStatus.ACTIVE.value}"

    def dismiss(self, trigger_id: str, actor_id: Optional[str] = None) -> TriggerDB:
        """User dismissal. Raises InvalidTransition on terminal triggers."""
        return self._close(trigger_id, TriggerStatus.DISMISSED, "user_dismissed", ActorType.USER, actor_id)

    def mark_actioned(
        self,
        trigger_id: str,
        actor_id: Optional[str] = None,
        actor: ActorType = ActorType.USER,
        reason: str = "user_actioned",
    ) -> TriggerDB:
        """Mark handled. Raises InvalidTransition on terminal triggers."""
        return self._close(trigger_id, TriggerStatus.ACTIONED, reason, actor, actor_id)

    def _close(
        self,
        trigger_id: str,
        to_status: TriggerStatus,
        reason: str,
        actor: ActorType,
        actor_id: Optional[str],
    ) -> TriggerDB:
        trigger = self._require(trigger_id, for_update=True)

        allowed, message = self.can_transition(trigger.status, to_status)
        if not allowed:
            logger.info(f"Rejected {reason} on trigger {trigger_id}: {message}")
            raise InvalidTransition(trigger_id, trigger.status, to_status)

        self._apply(trigger, to_status, reason, actor, actor_id)
        trigger.resolved_at = datetime.utcnow()
        self.db.flush()
        return trigger

    def _require(self, trigger_id: str, for_update: bool = False) -> TriggerDB:
        trigger = self.get(trigger_id, for_update=for_update)
        if trigger is None:
            raise TriggerNotFound(f"Trigger {trigger_id} not found")
        return trigger

    def _apply(
        self,
        trigger: TriggerDB,
        to_status: TriggerStatus,
        reason: str,
        actor: ActorType,
        actor_id: Optional[str] = None,
    ) -> None:
        from_status = trigger.status
        trigger.status = to_status
        trigger.updated_at = datetime.utcnow()
        self._log_event(trigger, from_status, to_status, reason, actor, actor_id)
        self.db.flush()

    def _log_event(
        self,
        trigger: TriggerDB,
        from_status: Optional[TriggerStatus],
        to_status: TriggerStatus,
        reason: str,
        actor: ActorType,
        actor_id: Optional[str] = None,
    ) -> TriggerEventDB:
        event = TriggerEventDB(
            id=str(uuid4()),
            trigger_id=trigger.id,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            actor_id=actor_id,
            reason=reason,
        )
        self.db.add(event)
        return event
