"""
Migration: Add expiration alert tables.

Creates the tables the sweep writes to:
1. alert_history - one row per (entity, threshold) alert, UNIQUE(entity_id, alert_type)
2. triggers - one open concern per entity (partial unique index on open rows)
3. trigger_events - append-only transition log
4. notifications - in-app deliveries

Leases, debts and properties are owned by the CRM schema and must already exist.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/alert_engine"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def column_exists(conn, table_name: str, column_name: str) -> bool:
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.columns
            WHERE table_name = :table_name AND column_name = :column_name
        )
    """), {"table_name": table_name, "column_name": column_name})
    return result.fetchone()[0]


def run_migration():
    """Create all alert engine tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # debts.status - lets refinanced/paid-off debts leave the sweep
        # =================================================================
        if table_exists(conn, "debts") and not column_exists(conn, "debts", "status"):
            conn.execute(text("""
                ALTER TABLE debts ADD COLUMN status VARCHAR(10) NOT NULL DEFAULT 'active'
            """))
            print("Added debts.status column")

        # =================================================================
        # TABLE 1: alert_history
        # =================================================================
        if table_exists(conn, "alert_history"):
            print("alert_history table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE alert_history (
                    id VARCHAR(36) PRIMARY KEY,
                    entity_kind VARCHAR(5) NOT NULL,
                    entity_id VARCHAR(36) NOT NULL,
                    alert_type VARCHAR(5) NOT NULL,
                    sent_at TIMESTAMP NOT NULL,
                    sent_to VARCHAR(36) NOT NULL,
                    acknowledged BOOLEAN NOT NULL DEFAULT FALSE,
                    acknowledged_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_alert_history_entity_alert UNIQUE (entity_id, alert_type)
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_alert_history_entity_id ON alert_history(entity_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_alert_history_sent_to ON alert_history(sent_to)
            """))
            conn.execute(text("""
                CREATE INDEX ix_alert_history_sent_at ON alert_history(sent_at)
            """))
            print("Created alert_history table")

        # =================================================================
        # TABLE 2: triggers
        # =================================================================
        if table_exists(conn, "triggers"):
            print("triggers table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE triggers (
                    id VARCHAR(36) PRIMARY KEY,
                    type VARCHAR(16) NOT NULL,
                    entity_kind VARCHAR(5) NOT NULL,
                    entity_id VARCHAR(36) NOT NULL,
                    trigger_date DATE NOT NULL,
                    priority VARCHAR(8) NOT NULL DEFAULT 'medium',
                    status VARCHAR(9) NOT NULL DEFAULT 'pending',
                    trigger_metadata JSON,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    resolved_at TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX uq_triggers_open_entity ON triggers(entity_kind, entity_id)
                WHERE status IN ('pending', 'active')
            """))
            conn.execute(text("""
                CREATE INDEX ix_triggers_status_trigger_date ON triggers(status, trigger_date)
            """))
            conn.execute(text("""
                CREATE INDEX ix_triggers_type_status ON triggers(type, status)
            """))
            print("Created triggers table")

        # =================================================================
        # TABLE 3: trigger_events
        # =================================================================
        if table_exists(conn, "trigger_events"):
            print("trigger_events table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE trigger_events (
                    id VARCHAR(36) PRIMARY KEY,
                    trigger_id VARCHAR(36) NOT NULL REFERENCES triggers(id) ON DELETE CASCADE,
                    from_status VARCHAR(9),
                    to_status VARCHAR(9) NOT NULL,
                    actor VARCHAR(6) NOT NULL,
                    actor_id VARCHAR(36),
                    reason VARCHAR(100) NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_trigger_events_trigger_id ON trigger_events(trigger_id)
            """))
            print("Created trigger_events table")

        # =================================================================
        # TABLE 4: notifications
        # =================================================================
        if table_exists(conn, "notifications"):
            print("notifications table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE notifications (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    type VARCHAR(14) NOT NULL,
                    title VARCHAR(255) NOT NULL,
                    body TEXT NOT NULL,
                    priority VARCHAR(6) NOT NULL DEFAULT 'medium',
                    entity_kind VARCHAR(5) NOT NULL,
                    entity_id VARCHAR(36) NOT NULL,
                    alert_id VARCHAR(36) REFERENCES alert_history(id),
                    trigger_id VARCHAR(36) REFERENCES triggers(id) ON DELETE SET NULL,
                    notification_metadata JSON,
                    is_read BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_notifications_user_id ON notifications(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_notifications_alert_id ON notifications(alert_id)
            """))
            print("Created notifications table")

        conn.commit()
        print("\nAlert tables migration completed successfully!")


if __name__ == "__main__":
    run_migration()
