"""
Identity access-change history built from SailPoint audit events.

Audit records are classified by ordered rule tables: the first matching rule
wins, so the order of each table is part of its meaning.
"""
import datetime
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from tools import api
from tools.models import AuditEvent, IdentityEvent

logger = logging.getLogger("sailpoint_mcp")

DEFAULT_EVENT_TYPES = [
    "ROLE_ASSIGNED",
    "ROLE_REMOVED",
    "ACCESS_PROFILE_ASSIGNED",
    "ACCESS_PROFILE_REMOVED",
    "ENTITLEMENT_ASSIGNED",
    "ENTITLEMENT_REMOVED",
]

# One page of the search endpoint, which is the most it returns without paging
IDENTITY_EVENTS_SEARCH_LIMIT = 250

UNKNOWN_ITEM_NAME = "Unknown"

# (substring of the event type, item type)
ITEM_TYPE_RULES: List[Tuple[str, str]] = [
    ("ROLE", "Role"),
    ("ACCESS_PROFILE", "Access Profile"),
    ("ENTITLEMENT", "Entitlement"),
    ("ACCOUNT", "Account"),
]

# details keys tried after target.name / target.id
ITEM_NAME_FIELDS = ("roleName", "accessProfileName", "entitlementName", "accountName", "name")
ITEM_ID_FIELDS = ("roleId", "accessProfileId", "entitlementId", "accountId", "id")


@dataclass(frozen=True)
class ChangeTypeRule:
    change_type: str
    action_terms: Tuple[str, ...]
    type_terms: Tuple[str, ...]

    def matches(self, action: str, event_type: str) -> bool:
        action = action.lower()
        event_type = event_type.lower()
        return (
            any(term in action for term in self.action_terms)
            or any(term in event_type for term in self.type_terms)
        )


CHANGE_TYPE_RULES: List[ChangeTypeRule] = [
    ChangeTypeRule("ADDED", ("assign", "grant", "add"), ("assigned", "granted")),
    ChangeTypeRule("REMOVED", ("remove", "revoke", "delete"), ("removed", "revoked")),
]

DEFAULT_CHANGE_TYPE = "MODIFIED"


def determine_item_type(event: AuditEvent) -> str:
    for needle, item_type in ITEM_TYPE_RULES:
        if needle in event.type:
            return item_type
    return event.type


def _first_present(event: AuditEvent, target_value: Optional[str], fields: Tuple[str, ...], fallback: str) -> str:
    if target_value:
        return target_value
    details = event.details if isinstance(event.details, dict) else {}
    for field in fields:
        if details.get(field):
            return str(details[field])
    return fallback


def get_item_name(event: AuditEvent) -> str:
    target_name = event.target.name if event.target else None
    return _first_present(event, target_name, ITEM_NAME_FIELDS, UNKNOWN_ITEM_NAME)


def get_item_id(event: AuditEvent) -> str:
    target_id = event.target.id if event.target else None
    return _first_present(event, target_id, ITEM_ID_FIELDS, "")


def determine_change_type(action: str, event_type: str = "") -> str:
    for rule in CHANGE_TYPE_RULES:
        if rule.matches(action or "", event_type or ""):
            return rule.change_type
    return DEFAULT_CHANGE_TYPE


def to_identity_event(event: AuditEvent) -> IdentityEvent:
    return IdentityEvent(
        timestamp=event.created,
        event_type=event.type,
        action=event.action,
        item_type=determine_item_type(event),
        item_name=get_item_name(event),
        item_id=get_item_id(event),
        change_type=determine_change_type(event.action, event.type),
        actor=(event.actor.name if event.actor else None) or "System",
        source=event.source.name if event.source else None,
        details=json.dumps(event.details or {}, separators=(",", ":")),
    )


def classify_events(events: List[AuditEvent]) -> List[IdentityEvent]:
    """Classify audit records, dropping those with no identifiable item."""
    classified = [to_identity_event(e) for e in events]
    kept = [e for e in classified if e.item_name != UNKNOWN_ITEM_NAME]
    if len(kept) < len(classified):
        logger.debug(f"Dropped {len(classified) - len(kept)} audit event(s) with no identifiable item")
    return kept


async def get_identity_events(
    identity_id: str,
    days_back: int = 30,
    event_types: Optional[List[str]] = None,
    now: Optional[datetime.datetime] = None,
) -> List[IdentityEvent]:
    end = now or datetime.datetime.now(datetime.timezone.utc)
    start = end - datetime.timedelta(days=days_back)

    audit_events = await api.search_audit_events(
        identity_id=identity_id,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        event_types=event_types or DEFAULT_EVENT_TYPES,
        limit=IDENTITY_EVENTS_SEARCH_LIMIT,
    )
    return classify_events(audit_events)
