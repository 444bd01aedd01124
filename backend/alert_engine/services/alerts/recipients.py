"""
Recipient Resolution

Maps a monitored entity to the user(s) who must hear about it.
The default resolver follows the property's listing agent assignment.
"""
from typing import List

from sqlalchemy.orm import Session

from ...models.db_models import EntityKind, LeaseDB, DebtDB, PropertyDB


class NoRecipient(Exception):
    """The entity has no resolvable owner/agent. Non-fatal: skip and retry next sweep."""

    def __init__(self, entity_kind: EntityKind, entity_id: str, reason: str = "no assigned agent"):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"No recipient for {entity_kind.value} {entity_id}: {reason}")


class RecipientResolver:
    """Interface: resolve(entity_kind, entity_id) -> non-empty list of user ids."""

    def resolve(self, entity_kind: EntityKind, entity_id: str) -> List[str]:
        raise NotImplementedError


class PropertyAgentResolver(RecipientResolver):
    """
    Notifies the listing agent of the property the lease/debt belongs to,
    plus any fixed escalation recipients (e.g. asset managers).
    """

    def __init__(self, db: Session, escalation_user_ids: List[str] = None):
        self.db = db
        self.escalation_user_ids = [u for u in (escalation_user_ids or []) if u]

    def resolve(self, entity_kind: EntityKind, entity_id: str) -> List[str]:
        model = LeaseDB if entity_kind == EntityKind.LEASE else DebtDB

        row = self.db.query(PropertyDB.listing_agent_id).join(
            model, model.property_id == PropertyDB.id
        ).filter(model.id == entity_id).first()

        if row is None:
            raise NoRecipient(entity_kind, entity_id, reason="entity or property not found")

        recipients = []
        if row[0]:
            recipients.append(row[0])
        for user_id in self.escalation_user_ids:
            if user_id not in recipients:
                recipients.append(user_id)

        if not recipients:
            raise NoRecipient(entity_kind, entity_id)
        return recipients
