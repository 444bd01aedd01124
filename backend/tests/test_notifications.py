"""
Tests for notification copy, delivery, recipient resolution and entity loading.
"""
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from alert_engine.models import MonitoredEntity
from alert_engine.models.db_models import (
    AlertType, EntityKind, LeaseStatus, NotificationDB, NotificationPriority, NotificationType,
    TriggerPriority, TriggerType,
)
from alert_engine.services.alerts import (
    DatabaseNotificationEmitter, DeliveryFailure, EntityRepository, NoRecipient,
    NotificationRequest, PropertyAgentResolver,
)
from alert_engine.services.alerts.notifications import PRIORITY_MAP, compose_message


TODAY = date(2025, 3, 3)


def _lease_entity(**overrides):
    values = dict(
        kind=EntityKind.LEASE,
        entity_id="lease-1",
        target_date=date(2025, 4, 2),
        status="active",
        property_id="prop-1",
        property_name="Harbor Point Plaza",
        counterparty="Acme Dental",
        value=Decimal("12500.00"),
    )
    values.update(overrides)
    return MonitoredEntity(**values)


def _debt_entity(**overrides):
    values = dict(
        kind=EntityKind.DEBT,
        entity_id="debt-1",
        target_date=date(2025, 3, 8),
        status="active",
        property_id="prop-1",
        property_name="Harbor Point Plaza",
        counterparty="First Coastal Bank",
        value=Decimal("4200000.00"),
        extra={"loan_type": "mortgage", "interest_rate": 6.25},
    )
    values.update(overrides)
    return MonitoredEntity(**values)


def _request(entity, alert_type=AlertType.DAYS_30, priority=TriggerPriority.HIGH, days_remaining=30, **kw):
    return NotificationRequest(
        recipient_id=kw.get("recipient_id", "agent-1"),
        entity=entity,
        alert_type=alert_type,
        alert_id=kw.get("alert_id", str(uuid4())),
        trigger_id=kw.get("trigger_id"),
        priority=priority,
        days_remaining=days_remaining,
        context=kw.get("context", {}),
    )


# =============================================================================
# TEST: MESSAGE COPY
# =============================================================================

class TestComposeMessage:
    """Tests for notification title/body."""

    def test_lease_message(self):
        message = compose_message(_request(_lease_entity()))

        assert message["title"] == "Lease Expiring in 30 Days"
        assert "Harbor Point Plaza" in message["body"]
        assert "Tenant: Acme Dental" in message["body"]
        assert "2025-04-02" in message["body"]
        assert "Monthly rent: $12,500.00." in message["body"]

    def test_debt_message(self):
        message = compose_message(
            _request(_debt_entity(), alert_type=AlertType.DAYS_7, days_remaining=5)
        )

        assert message["title"] == "Debt Maturing in 7 Days"
        assert "The mortgage at Harbor Point Plaza" in message["body"]
        assert "Lender: First Coastal Bank" in message["body"]
        assert "matures in 5 days" in message["body"]
        assert "Amount: $4,200,000.00." in message["body"]

    def test_title_uses_window_body_uses_actual_days(self):
        """A catch-up 90-day notice sent at 25 days says so in the body."""
        message = compose_message(
            _request(_lease_entity(), alert_type=AlertType.DAYS_90, days_remaining=25)
        )
        assert message["title"] == "Lease Expiring in 90 Days"
        assert "expires in 25 days" in message["body"]

    def test_missing_details_have_fallbacks(self):
        entity = _lease_entity(property_name=None, counterparty=None, value=None)
        message = compose_message(_request(entity))

        assert "a property" in message["body"]
        assert "Unknown Tenant" in message["body"]
        assert "Monthly rent" not in message["body"]


class TestNotificationRequest:
    """Tests for request classification."""

    def test_type_by_entity_kind(self):
        assert _request(_lease_entity()).notification_type == NotificationType.LEASE_EXPIRING
        assert _request(_debt_entity()).notification_type == NotificationType.DEBT_MATURING

    @pytest.mark.parametrize("priority,expected", [
        (TriggerPriority.CRITICAL, NotificationPriority.URGENT),
        (TriggerPriority.HIGH, NotificationPriority.HIGH),
        (TriggerPriority.MEDIUM, NotificationPriority.MEDIUM),
        (TriggerPriority.LOW, NotificationPriority.LOW),
    ])
    def test_priority_mapping(self, priority, expected):
        assert PRIORITY_MAP[priority] == expected
        assert _request(_lease_entity(), priority=priority).notification_priority == expected


# =============================================================================
# TEST: DATABASE EMITTER
# =============================================================================

class TestDatabaseNotificationEmitter:
    """Tests for in-app delivery."""

    def test_emit_writes_notification(self, db):
        from alert_engine.services.alerts import AlertLedgerService

        entry = AlertLedgerService(db).record(EntityKind.LEASE, "lease-1", AlertType.DAYS_30, "agent-1")
        db.commit()

        emitter = DatabaseNotificationEmitter(db)
        notification = emitter.emit(
            _request(_lease_entity(), alert_id=entry.id, context={"tenant_name": "Acme Dental"})
        )
        db.commit()

        stored = db.query(NotificationDB).filter(NotificationDB.id == notification.id).one()
        assert stored.user_id == "agent-1"
        assert stored.type == NotificationType.LEASE_EXPIRING
        assert stored.priority == NotificationPriority.HIGH
        assert stored.title == "Lease Expiring in 30 Days"
        assert stored.alert_id == entry.id
        assert stored.is_read is False
        assert stored.notification_metadata == {
            "alert_type": "30day",
            "days_remaining": 30,
            "tenant_name": "Acme Dental",
        }

    def test_storage_error_becomes_delivery_failure(self, mock_db):
        mock_db.flush.side_effect = SQLAlchemyError("disk I/O error")
        emitter = DatabaseNotificationEmitter(mock_db)
        request = _request(_lease_entity())

        with pytest.raises(DeliveryFailure) as exc_info:
            emitter.emit(request)

        assert exc_info.value.request is request
        assert "disk I/O error" in exc_info.value.reason
        assert "lease lease-1" in str(exc_info.value)


# =============================================================================
# TEST: RECIPIENT RESOLUTION
# =============================================================================

class TestPropertyAgentResolver:
    """Tests for the listing-agent resolver."""

    def test_lease_resolves_listing_agent(self, db, make_property, make_lease):
        lease = make_lease(end_in_days=30, prop=make_property(listing_agent_id="agent-42"))
        assert PropertyAgentResolver(db).resolve(EntityKind.LEASE, lease.id) == ["agent-42"]

    def test_debt_resolves_listing_agent(self, db, make_property, make_debt):
        debt = make_debt(matures_in_days=30, prop=make_property(listing_agent_id="agent-43"))
        assert PropertyAgentResolver(db).resolve(EntityKind.DEBT, debt.id) == ["agent-43"]

    def test_escalation_recipients_appended_once(self, db, make_property, make_lease):
        lease = make_lease(end_in_days=30, prop=make_property(listing_agent_id="agent-42"))
        resolver = PropertyAgentResolver(db, escalation_user_ids=["asset-mgr", "agent-42", ""])
        assert resolver.resolve(EntityKind.LEASE, lease.id) == ["agent-42", "asset-mgr"]

    def test_escalation_covers_unassigned_property(self, db, make_property, make_lease):
        lease = make_lease(end_in_days=30, prop=make_property(listing_agent_id=None))
        resolver = PropertyAgentResolver(db, escalation_user_ids=["asset-mgr"])
        assert resolver.resolve(EntityKind.LEASE, lease.id) == ["asset-mgr"]

    def test_unassigned_property_raises(self, db, make_property, make_lease):
        lease = make_lease(end_in_days=30, prop=make_property(listing_agent_id=None))
        with pytest.raises(NoRecipient) as exc_info:
            PropertyAgentResolver(db).resolve(EntityKind.LEASE, lease.id)
        assert exc_info.value.entity_id == lease.id

    def test_unknown_entity_raises(self, db):
        with pytest.raises(NoRecipient) as exc_info:
            PropertyAgentResolver(db).resolve(EntityKind.DEBT, "missing")
        assert "not found" in exc_info.value.reason


# =============================================================================
# TEST: ENTITY REPOSITORY
# =============================================================================

class TestEntityRepository:
    """Tests for monitored entity snapshots."""

    def test_load_monitored_snapshots(self, db, make_property, make_lease, make_debt):
        prop = make_property(name=None, address="7 Dock St")
        lease = make_lease(end_in_days=45, prop=prop)
        debt = make_debt(matures_in_days=200, prop=prop)
        make_lease(end_in_days=45, status=LeaseStatus.TERMINATED, prop=prop)

        entities = {e.entity_id: e for e in EntityRepository(db).load_monitored()}

        assert set(entities) == {lease.id, debt.id}
        lease_entity = entities[lease.id]
        assert lease_entity.kind == EntityKind.LEASE
        assert lease_entity.trigger_type == TriggerType.LEASE_EXPIRATION
        assert lease_entity.property_name == "7 Dock St"
        assert lease_entity.counterparty == "Acme Dental"
        assert lease_entity.is_monitorable is True

        debt_entity = entities[debt.id]
        assert debt_entity.trigger_type == TriggerType.DEBT_MATURITY
        assert debt_entity.extra == {"loan_type": "mortgage", "interest_rate": 6.25}

    def test_get_returns_inactive_entities(self, db, make_lease):
        lease = make_lease(end_in_days=10, status=LeaseStatus.EXPIRED)

        entity = EntityRepository(db).get(EntityKind.LEASE, lease.id)

        assert entity is not None
        assert entity.is_monitorable is False
        assert EntityRepository(db).get(EntityKind.LEASE, "missing") is None

    def test_upcoming_sorted_within_horizon(self, db, make_lease, make_debt):
        far = make_lease(end_in_days=120)
        soon = make_debt(matures_in_days=3)
        mid = make_lease(end_in_days=40)
        make_lease(end_in_days=-2)

        upcoming = EntityRepository(db).upcoming(TODAY, 90)

        assert [row["entity_id"] for row in upcoming] == [soon.id, mid.id]
        assert upcoming[0]["entity_kind"] == "debt"
        assert upcoming[0]["days_remaining"] == 3
        assert far.id not in {row["entity_id"] for row in upcoming}

    def test_upcoming_horizon_edges_inclusive(self, db, make_lease, make_debt):
        today_lease = make_lease(end_in_days=0)
        edge_debt = make_debt(matures_in_days=30)
        make_debt(matures_in_days=31)
        make_lease(end_in_days=-1)
        make_lease(end_in_days=10, status=LeaseStatus.TERMINATED)

        upcoming = EntityRepository(db).upcoming(TODAY, 30)

        assert [(row["entity_id"], row["days_remaining"]) for row in upcoming] == [
            (today_lease.id, 0),
            (edge_debt.id, 30),
        ]

    def test_describe_is_json_safe(self):
        context = _debt_entity().describe()
        assert context == {
            "property_id": "prop-1",
            "property_name": "Harbor Point Plaza",
            "target_date": "2025-03-08",
            "lender_name": "First Coastal Bank",
            "amount": 4200000.0,
            "loan_type": "mortgage",
            "interest_rate": 6.25,
        }
