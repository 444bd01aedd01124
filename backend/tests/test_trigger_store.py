"""
Tests for the Trigger Store.

Tests the trigger lifecycle:
1. find_or_create returns the single open trigger per entity
2. Priority and trigger date are re-derived on every touch
3. A closed trigger does not block a new one
4. pending → active → dismissed | actioned, never backwards
5. activate() on a terminal trigger reports instead of raising
6. Every transition is logged
"""
from datetime import date
from uuid import uuid4

import pytest

from alert_engine.models.db_models import (
    ActorType, EntityKind, TriggerDB, TriggerEventDB, TriggerPriority, TriggerStatus, TriggerType,
)
from alert_engine.services.alerts import InvalidTransition, TriggerNotFound, TriggerStore


TARGET = date(2025, 5, 1)


@pytest.fixture
def store(db):
    return TriggerStore(db)


@pytest.fixture
def entity_id():
    return str(uuid4())


def _open(store, entity_id, priority=TriggerPriority.LOW, trigger_date=TARGET, metadata=None):
    return store.find_or_create(
        EntityKind.LEASE, entity_id, TriggerType.LEASE_EXPIRATION, trigger_date, priority, metadata,
    )


def _events(db, trigger_id):
    return db.query(TriggerEventDB).filter(
        TriggerEventDB.trigger_id == trigger_id
    ).order_by(TriggerEventDB.created_at).all()


def _event_to(db, trigger_id, to_status):
    return db.query(TriggerEventDB).filter(
        TriggerEventDB.trigger_id == trigger_id,
        TriggerEventDB.to_status == to_status,
    ).one()


class TestFindOrCreate:
    """Tests for TriggerStore.find_or_create."""

    def test_creates_pending_trigger(self, db, store, entity_id):
        trigger, created = _open(store, entity_id, metadata={"tenant_name": "Acme Dental"})
        db.commit()

        assert created is True
        assert trigger.status == TriggerStatus.PENDING
        assert trigger.type == TriggerType.LEASE_EXPIRATION
        assert trigger.trigger_date == TARGET
        assert trigger.trigger_metadata == {"tenant_name": "Acme Dental"}

        events = _events(db, trigger.id)
        assert len(events) == 1
        assert events[0].from_status is None
        assert events[0].to_status == TriggerStatus.PENDING
        assert events[0].actor == ActorType.SYSTEM
        assert events[0].reason == "threshold_crossed"

    def test_second_call_returns_same_trigger(self, db, store, entity_id):
        first, _ = _open(store, entity_id)
        db.commit()
        second, created = _open(store, entity_id)
        db.commit()

        assert created is False
        assert second.id == first.id
        assert db.query(TriggerDB).count() == 1

    def test_existing_trigger_gets_rederived_priority(self, db, store, entity_id):
        _open(store, entity_id, priority=TriggerPriority.LOW)
        db.commit()

        trigger, _ = _open(
            store, entity_id,
            priority=TriggerPriority.CRITICAL,
            trigger_date=date(2025, 6, 1),
            metadata={"days_remaining": 5},
        )
        db.commit()

        assert trigger.priority == TriggerPriority.CRITICAL
        assert trigger.trigger_date == date(2025, 6, 1)
        assert trigger.trigger_metadata == {"days_remaining": 5}

    def test_existing_active_trigger_keeps_status(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.activate(trigger.id)
        db.commit()

        again, created = _open(store, entity_id, priority=TriggerPriority.HIGH)
        db.commit()

        assert created is False
        assert again.status == TriggerStatus.ACTIVE

    def test_closed_trigger_allows_new_one(self, db, store, entity_id):
        old, _ = _open(store, entity_id)
        store.dismiss(old.id, actor_id="agent-1")
        db.commit()

        new, created = _open(store, entity_id)
        db.commit()

        assert created is True
        assert new.id != old.id
        assert store.get_open(EntityKind.LEASE, entity_id).id == new.id

    def test_racing_session_reuses_winner(self, session_factory, entity_id):
        """The loser of the open-trigger insert race updates the winner's row."""
        sweep_a = session_factory()
        sweep_b = session_factory()
        try:
            store_b = TriggerStore(sweep_b)
            real_get_open = store_b.get_open
            lookups = []

            # Sweep B's fast-path lookup ran before A inserted; its re-fetch runs after
            def stale_then_real(kind, eid):
                lookups.append(eid)
                return None if len(lookups) == 1 else real_get_open(kind, eid)

            store_b.get_open = stale_then_real

            winner, created_a = TriggerStore(sweep_a).find_or_create(
                EntityKind.DEBT, entity_id, TriggerType.DEBT_MATURITY, TARGET, TriggerPriority.LOW,
            )
            sweep_a.commit()

            loser, created_b = store_b.find_or_create(
                EntityKind.DEBT, entity_id, TriggerType.DEBT_MATURITY, TARGET, TriggerPriority.HIGH,
            )
            sweep_b.commit()

            assert created_a is True
            assert created_b is False
            assert loser.id == winner.id
            assert loser.priority == TriggerPriority.HIGH
            assert len(lookups) == 2
            assert sweep_b.query(TriggerDB).filter_by(entity_id=entity_id).count() == 1
        finally:
            sweep_a.close()
            sweep_b.close()


class TestTransitions:
    """Tests for the forward-only lifecycle."""

    def test_can_transition_table(self, store):
        assert store.can_transition(TriggerStatus.PENDING, TriggerStatus.ACTIVE)[0] is True
        assert store.can_transition(TriggerStatus.PENDING, TriggerStatus.DISMISSED)[0] is True
        assert store.can_transition(TriggerStatus.ACTIVE, TriggerStatus.ACTIONED)[0] is True
        assert store.can_transition(TriggerStatus.ACTIVE, TriggerStatus.PENDING)[0] is False
        assert store.can_transition(TriggerStatus.DISMISSED, TriggerStatus.ACTIVE)[0] is False
        assert store.can_transition(TriggerStatus.ACTIONED, TriggerStatus.DISMISSED)[0] is False

    def test_terminal_statuses(self, store):
        assert store.is_terminal_status(TriggerStatus.DISMISSED) is True
        assert store.is_terminal_status(TriggerStatus.ACTIONED) is True
        assert store.is_terminal_status(TriggerStatus.PENDING) is False

    def test_activate_pending(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        ok, _ = store.activate(trigger.id)
        db.commit()

        assert ok is True
        assert store.get(trigger.id).status == TriggerStatus.ACTIVE
        assert _event_to(db, trigger.id, TriggerStatus.ACTIVE).reason == "alert_delivered"

    def test_activate_twice_logs_once(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.activate(trigger.id)
        ok, message = store.activate(trigger.id)
        db.commit()

        assert ok is True
        assert message == "Already active"
        assert len(_events(db, trigger.id)) == 2

    def test_activate_terminal_reports_without_mutating(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.dismiss(trigger.id, actor_id="agent-1")
        db.commit()

        ok, reason = store.activate(trigger.id)
        db.commit()

        assert ok is False
        assert "dismissed" in reason
        assert store.get(trigger.id).status == TriggerStatus.DISMISSED

    def test_dismiss_records_user_and_resolution(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.activate(trigger.id)
        store.dismiss(trigger.id, actor_id="agent-1")
        db.commit()

        trigger = store.get(trigger.id)
        assert trigger.status == TriggerStatus.DISMISSED
        assert trigger.resolved_at is not None

        last = _event_to(db, trigger.id, TriggerStatus.DISMISSED)
        assert last.from_status == TriggerStatus.ACTIVE
        assert last.to_status == TriggerStatus.DISMISSED
        assert last.actor == ActorType.USER
        assert last.actor_id == "agent-1"

    def test_mark_actioned_from_pending(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.mark_actioned(trigger.id, actor_id="agent-1")
        db.commit()
        assert store.get(trigger.id).status == TriggerStatus.ACTIONED

    def test_system_actioned_event(self, db, store, entity_id):
        trigger, _ = _open(store, entity_id)
        store.mark_actioned(trigger.id, actor=ActorType.SYSTEM, reason="entity_resolved")
        db.commit()

        last = _event_to(db, trigger.id, TriggerStatus.ACTIONED)
        assert last.actor == ActorType.SYSTEM
        assert last.actor_id is None
        assert last.reason == "entity_resolved"

    @pytest.mark.parametrize("first,second", [
        ("dismiss", "dismiss"),
        ("dismiss", "mark_actioned"),
        ("mark_actioned", "dismiss"),
        ("mark_actioned", "mark_actioned"),
    ])
    def test_terminal_rejects_further_commands(self, db, store, entity_id, first, second):
        trigger, _ = _open(store, entity_id)
        getattr(store, first)(trigger.id)
        db.commit()

        with pytest.raises(InvalidTransition) as exc_info:
            getattr(store, second)(trigger.id)

        assert exc_info.value.trigger_id == trigger.id
        assert exc_info.value.from_status in (TriggerStatus.DISMISSED, TriggerStatus.ACTIONED)

    def test_unknown_trigger(self, store):
        with pytest.raises(TriggerNotFound):
            store.dismiss("missing")
        with pytest.raises(TriggerNotFound):
            store.activate("missing")


class TestSearch:
    """Tests for filtered listing."""

    def test_search_filters_and_counts(self, db, store):
        for days in (10, 20, 30):
            trigger, _ = store.find_or_create(
                EntityKind.LEASE, str(uuid4()), TriggerType.LEASE_EXPIRATION,
                date(2025, 4, days), TriggerPriority.HIGH,
            )
        store.find_or_create(
            EntityKind.DEBT, str(uuid4()), TriggerType.DEBT_MATURITY, date(2025, 4, 5), TriggerPriority.CRITICAL,
        )
        db.commit()

        rows, total = store.search(type=TriggerType.LEASE_EXPIRATION, limit=2)
        assert total == 3
        assert [r.trigger_date for r in rows] == [date(2025, 4, 10), date(2025, 4, 20)]

        rows, total = store.search(descending=True, limit=10)
        assert total == 4
        assert rows[0].trigger_date == date(2025, 4, 30)

        rows, total = store.search(priority=TriggerPriority.CRITICAL)
        assert total == 1
        assert rows[0].entity_kind == EntityKind.DEBT
