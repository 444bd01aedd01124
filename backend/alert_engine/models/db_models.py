"""
Alert Engine - SQLAlchemy ORM Models
Monitored entities, the alert ledger, triggers and delivered notifications
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, JSON, ForeignKey,
    Enum as SQLEnum, Boolean, Date, UniqueConstraint, Index, event, inspect, text,
)
from sqlalchemy.orm import relationship
from ..database import Base


def _enum_column(enum_cls):
    """Persist enum values (not member names) so stored strings match the API."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
    )


# =============================================================================
# ENUMS
# =============================================================================

class EntityKind(str, Enum):
    """Kinds of monitored entities."""
    LEASE = "lease"
    DEBT = "debt"


class LeaseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    PENDING = "pending"


class DebtStatus(str, Enum):
    ACTIVE = "active"
    REFINANCED = "refinanced"
    PAID_OFF = "paid_off"


class LoanType(str, Enum):
    MORTGAGE = "mortgage"
    BRIDGE = "bridge"
    MEZZANINE = "mezzanine"
    CONSTRUCTION = "construction"
    OTHER = "other"


class AlertType(str, Enum):
    """Warning thresholds before a lease end date or debt maturity date."""
    DAYS_90 = "90day"
    DAYS_60 = "60day"
    DAYS_30 = "30day"
    DAYS_7 = "7day"


class TriggerType(str, Enum):
    LEASE_EXPIRATION = "lease_expiration"
    DEBT_MATURITY = "debt_maturity"
    PROPERTY_ALERT = "property_alert"
    DEAL_ALERT = "deal_alert"
    CUSTOM = "custom"


class TriggerPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TriggerStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DISMISSED = "dismissed"
    ACTIONED = "actioned"


class ActorType(str, Enum):
    """Who caused a trigger transition."""
    USER = "USER"
    SYSTEM = "SYSTEM"


class NotificationType(str, Enum):
    LEASE_EXPIRING = "LEASE_EXPIRING"
    DEBT_MATURING = "DEBT_MATURING"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# =============================================================================
# MONITORED ENTITIES
# =============================================================================

class PropertyDB(Base):
    """Property that leases and debts hang off. Owns the agent assignment."""
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    listing_agent_id = Column(String(36), nullable=True, index=True)  # User to notify

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    leases = relationship("LeaseDB", back_populates="property")
    debts = relationship("DebtDB", back_populates="property")


class LeaseDB(Base):
    __tablename__ = "leases"

    id = Column(String(36), primary_key=True)  # UUID
    property_id = Column(String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    tenant_name = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    monthly_rent = Column(Numeric(12, 2), nullable=True)
    square_feet = Column(Integer, nullable=True)
    status = Column(_enum_column(LeaseStatus), default=LeaseStatus.PENDING, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("PropertyDB", back_populates="leases")

    __table_args__ = (
        Index("ix_leases_status_end_date", "status", "end_date"),
    )


class DebtDB(Base):
    __tablename__ = "debts"

    id = Column(String(36), primary_key=True)  # UUID
    property_id = Column(String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    lender_name = Column(String(255), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=True)
    maturity_date = Column(Date, nullable=True)
    loan_type = Column(_enum_column(LoanType), default=LoanType.MORTGAGE, nullable=False)
    status = Column(_enum_column(DebtStatus), default=DebtStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("PropertyDB", back_populates="debts")

    __table_args__ = (
        Index("ix_debts_status_maturity_date", "status", "maturity_date"),
    )


# =============================================================================
# ALERT LEDGER
# =============================================================================
# One row per threshold alert issued for an entity. The unique constraint on
# (entity_id, alert_type) is the dedup guarantee: racing sweeps both try to
# insert and exactly one wins.
# =============================================================================

class AlertLedgerDB(Base):
    """
    Immutable record that one threshold alert was issued for one entity.
    Only acknowledged/acknowledged_at may change after insert. Never deleted.
    """
    __tablename__ = "alert_history"

    id = Column(String(36), primary_key=True)  # UUID

    # Tagged entity reference - both parts required
    entity_kind = Column(_enum_column(EntityKind), nullable=False)
    entity_id = Column(String(36), nullable=False, index=True)

    alert_type = Column(_enum_column(AlertType), nullable=False)
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    sent_to = Column(String(36), nullable=False, index=True)

    acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    notifications = relationship("NotificationDB", back_populates="alert")

    __table_args__ = (
        UniqueConstraint("entity_id", "alert_type", name="uq_alert_history_entity_alert"),
        Index("ix_alert_history_sent_at", "sent_at"),
    )


LEDGER_MUTABLE_FIELDS = {"acknowledged", "acknowledged_at"}


class LedgerImmutableError(Exception):
    """Raised when code tries to rewrite or delete an alert ledger entry."""
    pass


@event.listens_for(AlertLedgerDB, "before_update")
def _guard_ledger_update(mapper, connection, target):
    state = inspect(target)
    for column_attr in mapper.column_attrs:
        if column_attr.key in LEDGER_MUTABLE_FIELDS:
            continue
        if state.attrs[column_attr.key].history.has_changes():
            raise LedgerImmutableError(
                f"Alert ledger entry {target.id}: field '{column_attr.key}' is immutable"
            )


@event.listens_for(AlertLedgerDB, "before_delete")
def _guard_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Alert ledger entry {target.id} cannot be deleted")


# =============================================================================
# TRIGGERS
# =============================================================================

OPEN_TRIGGER_STATUSES = (TriggerStatus.PENDING, TriggerStatus.ACTIVE)

_OPEN_TRIGGER_CLAUSE = text("status IN ('pending', 'active')")


class TriggerDB(Base):
    """
    The "this needs attention" concern for a monitored entity.
    At most one open (pending/active) trigger exists per entity.
    """
    __tablename__ = "triggers"

    id = Column(String(36), primary_key=True)  # UUID
    type = Column(_enum_column(TriggerType), nullable=False)

    entity_kind = Column(_enum_column(EntityKind), nullable=False)
    entity_id = Column(String(36), nullable=False)

    trigger_date = Column(Date, nullable=False)  # Lease end / debt maturity
    priority = Column(_enum_column(TriggerPriority), nullable=False, default=TriggerPriority.MEDIUM)
    status = Column(_enum_column(TriggerStatus), nullable=False, default=TriggerStatus.PENDING)

    # Context for display and notification copy (renamed from 'metadata', reserved in SQLAlchemy)
    trigger_metadata = Column(JSON, nullable=True, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)  # Set on dismissed/actioned

    events = relationship(
        "TriggerEventDB",
        back_populates="trigger",
        cascade="all, delete-orphan",
        order_by="TriggerEventDB.created_at",
    )

    __table_args__ = (
        Index(
            "uq_triggers_open_entity",
            "entity_kind",
            "entity_id",
            unique=True,
            postgresql_where=_OPEN_TRIGGER_CLAUSE,
            sqlite_where=_OPEN_TRIGGER_CLAUSE,
        ),
        Index("ix_triggers_status_trigger_date", "status", "trigger_date"),
        Index("ix_triggers_type_status", "type", "status"),
    )


class TriggerEventDB(Base):
    """
    Append-only log of trigger status transitions.
    """
    __tablename__ = "trigger_events"

    id = Column(String(36), primary_key=True)  # UUID
    trigger_id = Column(String(36), ForeignKey("triggers.id", ondelete="CASCADE"), nullable=False, index=True)

    from_status = Column(_enum_column(TriggerStatus), nullable=True)  # NULL on creation
    to_status = Column(_enum_column(TriggerStatus), nullable=False)

    actor = Column(_enum_column(ActorType), nullable=False)
    actor_id = Column(String(36), nullable=True)  # User id for USER actions
    reason = Column(String(100), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    trigger = relationship("TriggerDB", back_populates="events")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationDB(Base):
    """Delivered in-app notification written by the database emitter."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), nullable=False, index=True)

    type = Column(_enum_column(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    priority = Column(_enum_column(NotificationPriority), nullable=False, default=NotificationPriority.MEDIUM)

    entity_kind = Column(_enum_column(EntityKind), nullable=False)
    entity_id = Column(String(36), nullable=False)
    alert_id = Column(String(36), ForeignKey("alert_history.id"), nullable=True, index=True)
    trigger_id = Column(String(36), ForeignKey("triggers.id", ondelete="SET NULL"), nullable=True)

    notification_metadata = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    alert = relationship("AlertLedgerDB", back_populates="notifications")
