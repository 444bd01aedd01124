"""
Notification Emission

Turns an alert decision into a delivered notification. Delivery can fail
independently of the sweep; a failure never un-records the ledger entry.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    AlertType, EntityKind, NotificationDB, NotificationPriority, NotificationType, TriggerPriority,
)
from ...models.monitored import MonitoredEntity
from .time_window import window_days

logger = logging.getLogger(__name__)

# Operational error channel for failed deliveries
delivery_logger = logging.getLogger("alert_engine.delivery")


PRIORITY_MAP = {
    TriggerPriority.CRITICAL: NotificationPriority.URGENT,
    TriggerPriority.HIGH: NotificationPriority.HIGH,
    TriggerPriority.MEDIUM: NotificationPriority.MEDIUM,
    TriggerPriority.LOW: NotificationPriority.LOW,
}


@dataclass
class NotificationRequest:
    """Everything a transport needs to tell one user about one alert."""
    recipient_id: str
    entity: MonitoredEntity
    alert_type: AlertType
    alert_id: str
    trigger_id: Optional[str]
    priority: TriggerPriority
    days_remaining: int
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def notification_type(self) -> NotificationType:
        if self.entity.kind == EntityKind.LEASE:
            return NotificationType.LEASE_EXPIRING
        return NotificationType.DEBT_MATURING

    @property
    def notification_priority(self) -> NotificationPriority:
        return PRIORITY_MAP.get(self.priority, NotificationPriority.MEDIUM)


class DeliveryFailure(Exception):
    """A notification could not be delivered. Reported, not retried."""

    def __init__(self, request: NotificationRequest, reason: str):
        self.request = request
        self.reason = reason
        super().__init__(
            f"Delivery of {request.alert_type.value} alert for {request.entity.kind.value} "
            f"{request.entity.entity_id} to {request.recipient_id} failed: {reason}"
        )


def _format_money(value) -> str:
    return f"${float(value):,.2f}"


def _format_date(value: Optional[date]) -> str:
    return value.isoformat() if value else "an unknown date"


def compose_message(request: NotificationRequest) -> Dict[str, str]:
    """Title and body for a threshold alert."""
    entity = request.entity
    days = window_days(request.alert_type)
    property_name = entity.property_name or "a property"

    if entity.kind == EntityKind.LEASE:
        title = f"Lease Expiring in {days} Days"
        tenant = entity.counterparty or "Unknown Tenant"
        body = (
            f"The lease at {property_name} (Tenant: {tenant}) expires in "
            f"{request.days_remaining} days on {_format_date(entity.target_date)}."
        )
        if entity.value is not None:
            body += f" Monthly rent: {_format_money(entity.value)}."
    else:
        title = f"Debt Maturing in {days} Days"
        lender = entity.counterparty or "Unknown Lender"
        loan_type = entity.extra.get("loan_type", "loan")
        body = (
            f"The {loan_type} at {property_name} (Lender: {lender}) matures in "
            f"{request.days_remaining} days on {_format_date(entity.target_date)}."
        )
        if entity.value is not None:
            body += f" Amount: {_format_money(entity.value)}."

    return {"title": title, "body": body}


class NotificationEmitter:
    """Interface: emit(request) delivers or raises DeliveryFailure."""

    def emit(self, request: NotificationRequest) -> Any:
        raise NotImplementedError


class DatabaseNotificationEmitter(NotificationEmitter):
    """
    In-app delivery: writes a notifications row for the recipient.
    The write runs in a SAVEPOINT so a failure leaves the sweep's
    transaction intact.
    """

    def __init__(self, db: Session):
        self.db = db

    def emit(self, request: NotificationRequest) -> NotificationDB:
        message = compose_message(request)

        notification = NotificationDB(
            id=str(uuid4()),
            user_id=request.recipient_id,
            type=request.notification_type,
            title=message["title"],
            body=message["body"],
            priority=request.notification_priority,
            entity_kind=request.entity.kind,
            entity_id=request.entity.entity_id,
            alert_id=request.alert_id,
            trigger_id=request.trigger_id,
            notification_metadata={
                "alert_type": request.alert_type.value,
                "days_remaining": request.days_remaining,
                **request.context,
            },
            is_read=False,
        )

        try:
            with self.db.begin_nested():
                self.db.add(notification)
                self.db.flush()
        except SQLAlchemyError as e:
            raise DeliveryFailure(request, str(e)) from e

        logger.debug(f"Notification {notification.id} created for user {request.recipient_id}")
        return notification
