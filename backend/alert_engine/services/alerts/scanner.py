"""
Expiration Scanner

One sweep pass over every monitored lease and debt.

Per entity:
- Build the already-sent set from the alert ledger
- Ask the time window evaluator for due thresholds
- Find or create the entity's trigger with a re-derived priority
- Record each due threshold in the ledger; only the writer that wins the
  unique constraint notifies, racing sweeps see a Conflict and move on
- Activate the trigger once an alert is delivered
- Any error from the emitter counts as a delivery failure for that recipient
  only; the remaining recipients and thresholds are still handled

Triggers whose entity no longer qualifies (terminated, refinanced, deleted,
or renewed past every window) are closed as actioned by the system.

Entities are independent: each is committed on its own and an error in one
is collected into the summary without aborting the pass. Overlapping sweeps
are safe; no global lock is taken.
"""
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import ActorType, TriggerType
from ...models.monitored import MonitoredEntity
from .alert_ledger import AlertLedgerService, Conflict
from .entity_repository import EntityRepository
from .notifications import (
    DatabaseNotificationEmitter, DeliveryFailure, NotificationEmitter, NotificationRequest,
    delivery_logger,
)
from .recipients import NoRecipient, PropertyAgentResolver, RecipientResolver
from .time_window import SMALLEST_WINDOW_DAYS, WIDEST_WINDOW_DAYS, TimeWindowEvaluator, to_utc_date
from .trigger_store import InvalidTransition, TriggerStore

logger = logging.getLogger(__name__)


# Cron cadence the deployment is configured with
SWEEP_INTERVAL_HOURS = float(os.getenv("SWEEP_INTERVAL_HOURS", "24"))

# Fixed recipients copied on every alert (comma-separated user ids)
ALERT_ESCALATION_USER_IDS = [
    u.strip() for u in os.getenv("ALERT_ESCALATION_USER_IDS", "").split(",") if u.strip()
]

MONITORED_TRIGGER_TYPES = [TriggerType.LEASE_EXPIRATION, TriggerType.DEBT_MATURITY]


def validate_sweep_interval(interval_hours: float = None) -> float:
    """
    The cadence must guarantee a sweep inside every entity's final 7-day
    window. Raises ValueError otherwise.
    """
    hours = SWEEP_INTERVAL_HOURS if interval_hours is None else interval_hours
    if hours <= 0:
        raise ValueError(f"Sweep interval must be positive, got {hours}h")
    if timedelta(hours=hours) >= timedelta(days=SMALLEST_WINDOW_DAYS):
        raise ValueError(
            f"Sweep interval {hours}h is not shorter than the {SMALLEST_WINDOW_DAYS}-day final window"
        )
    return hours


@dataclass
class SweepResult:
    """Summary of one sweep pass."""
    run_date: str
    as_of: str
    scanned: int = 0
    processed: int = 0
    alerts_recorded: int = 0
    notifications_sent: int = 0
    conflicts: int = 0
    skipped: int = 0
    delivery_failures: int = 0
    failed: int = 0
    triggers_created: int = 0
    triggers_resolved: int = 0
    duration_ms: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_date": self.run_date,
            "as_of": self.as_of,
            "scanned": self.scanned,
            "processed": self.processed,
            "alerts_recorded": self.alerts_recorded,
            "notifications_sent": self.notifications_sent,
            "conflicts": self.conflicts,
            "skipped": self.skipped,
            "delivery_failures": self.delivery_failures,
            "failed": self.failed,
            "triggers_created": self.triggers_created,
            "triggers_resolved": self.triggers_resolved,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
        }


class ExpirationScanner:
    """
    Runs sweep passes. Collaborators default to the database-backed
    implementations and can be swapped (tests, other transports).
    """

    def __init__(
        self,
        db_session: Session,
        resolver: Optional[RecipientResolver] = None,
        emitter: Optional[NotificationEmitter] = None,
        evaluator: Optional[TimeWindowEvaluator] = None,
    ):
        self.db = db_session
        self.repository = EntityRepository(db_session)
        self.ledger = AlertLedgerService(db_session)
        self.triggers = TriggerStore(db_session)
        self.evaluator = evaluator or TimeWindowEvaluator()
        self.resolver = resolver or PropertyAgentResolver(db_session, ALERT_ESCALATION_USER_IDS)
        self.emitter = emitter or DatabaseNotificationEmitter(db_session)

    def run_sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one full pass and return its summary.

        `now` defaults to the current UTC time; pass a fixed value to replay
        a sweep for a given day.
        """
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)
        today = to_utc_date(now)

        result = SweepResult(
            run_date=datetime.now(timezone.utc).isoformat(),
            as_of=today.isoformat(),
        )

        logger.info(f"Starting expiration sweep as of {today.isoformat()}")

        entities = self.repository.load_monitored()
        result.scanned = len(entities)

        for entity in entities:
            try:
                self._process_entity(entity, now, result)
            except Exception as e:
                self.db.rollback()
                result.failed += 1
                result.errors.append({
                    "entity_kind": entity.kind.value,
                    "entity_id": entity.entity_id,
                    "error": str(e),
                })
                logger.error(f"Sweep failed for {entity.kind.value} {entity.entity_id}: {e}")

        self._resolve_closed_entities(today, result)
        # End the trailing read transaction
        self.db.commit()

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Expiration sweep complete: scanned={result.scanned} processed={result.processed} "
            f"alerts={result.alerts_recorded} notifications={result.notifications_sent} "
            f"conflicts={result.conflicts} skipped={result.skipped} "
            f"delivery_failures={result.delivery_failures} failed={result.failed} "
            f"resolved={result.triggers_resolved}"
        )
        return result.to_dict()

    # =========================================================================
    # PER-ENTITY PROCESSING
    # =========================================================================

    def _process_entity(self, entity: MonitoredEntity, now: datetime, result: SweepResult) -> None:
        already_sent = self.ledger.fired_types(entity.kind, entity.entity_id)
        due = self.evaluator.evaluate(now, entity.target_date, already_sent)
        if not due:
            return

        days_remaining = self.evaluator.days_remaining(now, entity.target_date)
        priority = self.evaluator.priority_for(days_remaining)
        context = entity.describe()
        context["days_remaining"] = days_remaining

        trigger, created = self.triggers.find_or_create(
            entity.kind,
            entity.entity_id,
            entity.trigger_type,
            entity.target_date,
            priority,
            metadata=context,
        )
        trigger_id = trigger.id
        self.db.commit()
        if created:
            result.triggers_created += 1

        try:
            recipients = self.resolver.resolve(entity.kind, entity.entity_id)
        except NoRecipient as e:
            # Ledger untouched, so the next sweep retries
            result.skipped += 1
            logger.warning(str(e))
            return

        sent_at = now.astimezone(timezone.utc).replace(tzinfo=None) if now.tzinfo else now

        for alert_type in due:
            entry = self.ledger.record(
                entity.kind, entity.entity_id, alert_type, recipients[0], sent_at=sent_at,
            )
            if isinstance(entry, Conflict):
                result.conflicts += 1
                continue

            # Commit the decision before delivery: a crash from here on can
            # lose a notification but never duplicate one.
            entry_id = entry.id
            self.db.commit()
            result.alerts_recorded += 1

            delivered = 0
            for recipient_id in recipients:
                request = NotificationRequest(
                    recipient_id=recipient_id,
                    entity=entity,
                    alert_type=alert_type,
                    alert_id=entry_id,
                    trigger_id=trigger_id,
                    priority=priority,
                    days_remaining=days_remaining,
                    context=context,
                )
                try:
                    self.emitter.emit(request)
                    delivered += 1
                except DeliveryFailure as e:
                    self._report_delivery_failure(e, result)
                except Exception as e:
                    # Transport errors from any emitter; the ledger row is
                    # already committed, so the remaining recipients still get it
                    self._report_delivery_failure(
                        DeliveryFailure(request, f"{type(e).__name__}: {e}"), result
                    )

            result.notifications_sent += delivered
            if delivered:
                self.triggers.activate(trigger_id)
            self.db.commit()

        result.processed += 1

    def _report_delivery_failure(self, failure: DeliveryFailure, result: SweepResult) -> None:
        request = failure.request
        result.delivery_failures += 1
        result.errors.append({
            "entity_kind": request.entity.kind.value,
            "entity_id": request.entity.entity_id,
            "alert_type": request.alert_type.value,
            "recipient_id": request.recipient_id,
            "error": failure.reason,
        })
        delivery_logger.error(str(failure))

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _resolution_reason(self, entity: Optional[MonitoredEntity], today) -> Optional[str]:
        """Why an open trigger's concern no longer applies, or None if it still does."""
        if entity is None or not entity.is_monitorable:
            return "entity_resolved"
        if self.evaluator.days_remaining(today, entity.target_date) > WIDEST_WINDOW_DAYS:
            # Renewed or extended past every window
            return "target_date_extended"
        return None

    def _resolve_closed_entities(self, today, result: SweepResult) -> None:
        """Close open triggers whose lease/debt has left the monitored set."""
        open_refs = [
            (t.id, t.entity_kind, t.entity_id)
            for t in self.triggers.list_open(MONITORED_TRIGGER_TYPES)
        ]

        for trigger_id, entity_kind, entity_id in open_refs:
            try:
                entity = self.repository.get(entity_kind, entity_id)
                reason = self._resolution_reason(entity, today)
                if reason is None:
                    continue

                self.triggers.mark_actioned(
                    trigger_id,
                    actor=ActorType.SYSTEM,
                    reason=reason,
                )
                self.db.commit()
                result.triggers_resolved += 1
                logger.info(f"Trigger {trigger_id} actioned by system: {reason}")
            except InvalidTransition:
                # Closed by a user since it was listed
                self.db.rollback()
                logger.debug(f"Trigger {trigger_id} already closed")
            except Exception as e:
                self.db.rollback()
                result.failed += 1
                result.errors.append({"trigger_id": trigger_id, "error": str(e)})
                logger.error(f"Failed to resolve trigger {trigger_id}: {e}")
