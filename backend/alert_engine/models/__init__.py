"""Alert Engine - Data Models"""
from .db_models import (
    # Enums
    EntityKind, LeaseStatus, DebtStatus, LoanType, AlertType,
    TriggerType, TriggerPriority, TriggerStatus, ActorType,
    NotificationType, NotificationPriority,
    # Tables
    PropertyDB, LeaseDB, DebtDB, AlertLedgerDB, TriggerDB, TriggerEventDB, NotificationDB,
    OPEN_TRIGGER_STATUSES, LedgerImmutableError,
)
from .monitored import MonitoredEntity

__all__ = [
    "EntityKind", "LeaseStatus", "DebtStatus", "LoanType", "AlertType",
    "TriggerType", "TriggerPriority", "TriggerStatus", "ActorType",
    "NotificationType", "NotificationPriority",
    "PropertyDB", "LeaseDB", "DebtDB", "AlertLedgerDB", "TriggerDB", "TriggerEventDB", "NotificationDB",
    "OPEN_TRIGGER_STATUSES", "LedgerImmutableError",
    "MonitoredEntity",
]
