"""
Expiration Alert Services

Lease expiration / debt maturity alerting:
- TimeWindowEvaluator: pure threshold arithmetic (90/60/30/7 days)
- AlertLedgerService: append-only dedup ledger, one row per threshold
- TriggerStore: one open concern per entity, forward-only lifecycle
- EntityRepository: monitored lease/debt snapshots
- PropertyAgentResolver / DatabaseNotificationEmitter: default collaborators
- ExpirationScanner: the sweep that ties them together
"""

from .time_window import TimeWindowEvaluator, THRESHOLD_CONFIG
from .alert_ledger import AlertLedgerService, Conflict, AlertEntryNotFound
from .trigger_store import TriggerStore, InvalidTransition, TriggerNotFound
from .entity_repository import EntityRepository
from .recipients import RecipientResolver, PropertyAgentResolver, NoRecipient
from .notifications import (
    NotificationEmitter, DatabaseNotificationEmitter, NotificationRequest, DeliveryFailure,
)
from .scanner import ExpirationScanner, SweepResult, validate_sweep_interval

__all__ = [
    'TimeWindowEvaluator',
    'THRESHOLD_CONFIG',
    'AlertLedgerService',
    'Conflict',
    'AlertEntryNotFound',
    'TriggerStore',
    'InvalidTransition',
    'TriggerNotFound',
    'EntityRepository',
    'RecipientResolver',
    'PropertyAgentResolver',
    'NoRecipient',
    'NotificationEmitter',
    'DatabaseNotificationEmitter',
    'NotificationRequest',
    'DeliveryFailure',
    'ExpirationScanner',
    'SweepResult',
    'validate_sweep_interval',
]
