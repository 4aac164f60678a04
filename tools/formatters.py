"""
Text rendering for tool and resource output: markdown, ASCII tables, CSV, JSON.

Pure functions, no network access.
"""
import csv
import datetime
import io
import json
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from tools.models import (
    AccessProfile,
    Account,
    AttributeMapping,
    Identity,
    IdentityEvent,
    Role,
)

NO_MAPPINGS = "No attribute mappings found"
NO_EVENTS = "No events found for the specified time period."

TABLE_HEADERS = ["Profile Name", "Target Attribute", "Transform Type", "Source Attributes", "Required", "Expression"]
CSV_HEADERS = [
    "Profile Name", "Profile ID", "Target Attribute", "Transform Type", "Transform Name",
    "Source Attributes", "Required", "Expression", "Description",
]
EXPRESSION_WIDTH = 50

CHANGE_ICONS = {"ADDED": "✅", "REMOVED": "❌"}
DEFAULT_CHANGE_ICON = "🔄"


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_json(value: Any) -> str:
    return json.dumps(_jsonable(value), indent=2)


def _or_na(value: Optional[str]) -> str:
    return value or "N/A"


def _label(item: BaseModel) -> str:
    data = item.model_dump(by_alias=True, exclude_none=True)
    return data.get("name") or data.get("displayName") or data.get("id") or "Unnamed"


# ============================================
# Identity
# ============================================

def format_identity_markdown(
    identity: Identity,
    accounts: Optional[List[Account]] = None,
    access_profiles: Optional[List[AccessProfile]] = None,
    roles: Optional[List[Role]] = None,
) -> str:
    md = f"# Identity: {identity.name or identity.id}\n\n"

    md += "## Basic Information\n\n"
    md += f"- **ID**: {identity.id}\n"
    md += f"- **Display Name**: {_or_na(identity.display_name)}\n"
    md += f"- **Email**: {_or_na(identity.email)}\n"
    md += f"- **First Name**: {_or_na(identity.first_name)}\n"
    md += f"- **Last Name**: {_or_na(identity.last_name)}\n"
    md += f"- **Department**: {_or_na(identity.department)}\n"

    if identity.manager:
        md += f"- **Manager**: {identity.manager.name} ({identity.manager.id})\n"
    if identity.source:
        md += f"- **Source**: {identity.source.name} ({identity.source.id})\n"

    if accounts:
        md += f"\n## Accounts ({len(accounts)})\n\n"
        for account in accounts:
            md += f"- **{_label(account)}** - {account.source_name or account.source_id or 'Unknown source'}\n"
            if account.disabled:
                md += "  - Status: DISABLED\n"

    for title, items in (("Access Profiles", access_profiles), ("Roles", roles)):
        if not items:
            continue
        md += f"\n## {title} ({len(items)})\n\n"
        for item in items:
            md += f"- **{_label(item)}**\n"
            if item.description:
                md += f"  - {item.description}\n"

    return md


# ============================================
# Attribute Mappings
# ============================================

def _truncate(text: str, width: int = EXPRESSION_WIDTH) -> str:
    return text if len(text) <= width else text[:width - 3] + "..."


def format_mappings_table(mappings: Sequence[AttributeMapping]) -> str:
    if not mappings:
        return NO_MAPPINGS

    rows = [
        [
            m.profile_name,
            m.target_attribute,
            m.transform_type,
            m.source_attributes,
            "Yes" if m.is_required else "No",
            _truncate(m.expression),
        ]
        for m in mappings
    ]
    widths = [max(len(header), *(len(row[i]) for row in rows)) for i, header in enumerate(TABLE_HEADERS)]

    def line(cells: Sequence[str]) -> str:
        return "|" + "|".join(f" {cell.ljust(widths[i])} " for i, cell in enumerate(cells)) + "|"

    separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    return "\n".join([separator, line(TABLE_HEADERS), separator, *(line(r) for r in rows), separator])


def format_mappings_csv(mappings: Sequence[AttributeMapping]) -> str:
    """Header row unquoted, every data field quoted with embedded quotes doubled."""
    if not mappings:
        return NO_MAPPINGS

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for m in mappings:
        writer.writerow([
            m.profile_name,
            m.profile_id,
            m.target_attribute,
            m.transform_type,
            m.transform_name,
            m.source_attributes,
            "true" if m.is_required else "false",
            m.expression,
            m.description,
        ])
    return ",".join(CSV_HEADERS) + "\n" + buffer.getvalue().rstrip("\n")


def format_mappings_json(profile_count: int, mappings: Sequence[AttributeMapping]) -> str:
    return to_json({
        "profileCount": profile_count,
        "mappingCount": len(mappings),
        "mappings": list(mappings),
    })


# ============================================
# Identity Events
# ============================================

def parse_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def _newest_first(events: Sequence[IdentityEvent]) -> List[IdentityEvent]:
    oldest = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
    return sorted(events, key=lambda e: parse_timestamp(e.timestamp) or oldest, reverse=True)


def format_identity_events(events: Sequence[IdentityEvent]) -> str:
    if not events:
        return NO_EVENTS

    output = "# Identity Access Change History\n\n"
    output += f"Found {len(events)} events:\n\n"

    # Sorted newest first, so day groups come out in descending order too
    by_day: Dict[str, List[IdentityEvent]] = {}
    for event in _newest_first(events):
        ts = parse_timestamp(event.timestamp)
        day = ts.strftime("%a %b %d %Y") if ts else "Unknown date"
        by_day.setdefault(day, []).append(event)

    for day, day_events in by_day.items():
        output += f"## {day}\n\n"
        for event in day_events:
            ts = parse_timestamp(event.timestamp)
            time_str = ts.strftime("%H:%M:%S UTC") if ts else "--:--:--"
            icon = CHANGE_ICONS.get(event.change_type, DEFAULT_CHANGE_ICON)

            output += f"### {icon} {time_str} - {event.change_type} {event.item_type}\n\n"
            output += f"- **Item**: {event.item_name}\n"
            output += f"- **Action**: {event.action}\n"
            output += f"- **Actor**: {event.actor}\n"
            if event.source:
                output += f"- **Source**: {event.source}\n"
            output += f"- **Event Type**: {event.event_type}\n"
            if event.details and event.details != "{}":
                output += f"- **Details**: {event.details}\n"
            output += "\n"

    return output


def format_events_summary(events: Sequence[IdentityEvent], days_back: int) -> str:
    if not events:
        return NO_EVENTS

    output = "# Identity Access Change Summary\n\n"
    output += f"- **Period**: last {days_back} days\n"
    output += f"- **Total events**: {len(events)}\n\n"

    output += "## By Change Type\n\n"
    for change_type, count in Counter(e.change_type for e in events).most_common():
        output += f"- {change_type}: {count}\n"

    output += "\n## By Item Type\n\n"
    for item_type, count in Counter(e.item_type for e in events).most_common():
        output += f"- {item_type}: {count}\n"

    output += "\n## Changes\n\n"
    for event in _newest_first(events):
        ts = parse_timestamp(event.timestamp)
        day = ts.strftime("%Y-%m-%d") if ts else "unknown"
        icon = CHANGE_ICONS.get(event.change_type, DEFAULT_CHANGE_ICON)
        output += f"- {day} {icon} {event.change_type} {event.item_type}: {event.item_name} (by {event.actor})\n"

    return output
