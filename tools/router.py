"""
Tool router: maps a tool name and argument dict to a handler and a text payload.

call_tool never raises. Unknown names, missing arguments and any failure inside a
handler come back as a ToolResponse with is_error set.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from batch import BatchedTask, ParallelEngine
from errors import InvalidArgumentError, MissingArgumentError, SailPointError, UnknownToolError
from tools import api, events, formatters, profiles

logger = logging.getLogger("sailpoint_mcp")

DEFAULT_SEARCH_LIMIT = 50
DEFAULT_AUDIT_LIMIT = 100
DEFAULT_DAYS_BACK = 30

MAPPING_FORMATS = ("table", "json", "csv")
EVENT_FORMATS = ("detailed", "summary")


class ToolResponse(BaseModel):
    text: str
    is_error: bool = False


# ============================================
# Argument Helpers
# ============================================

def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _str_arg(args: Dict[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if _is_missing(value):
        return None
    return str(value)


def _int_arg(args: Dict[str, Any], key: str, default: int) -> int:
    """Positive integer argument; absent or 0 means the default."""
    value = args.get(key)
    if _is_missing(value):
        return default
    if isinstance(value, bool):
        raise InvalidArgumentError(f"'{key}' must be a positive integer")
    try:
        number = int(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"'{key}' must be a positive integer, got {value!r}")
    if number == 0:
        return default
    if number < 1:
        raise InvalidArgumentError(f"'{key}' must be a positive integer, got {value!r}")
    return number


def _bool_arg(args: Dict[str, Any], key: str, default: bool = True) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "")
    return bool(value)


def _choice_arg(args: Dict[str, Any], key: str, choices: Tuple[str, ...], default: str) -> str:
    value = _str_arg(args, key)
    if value is None:
        return default
    value = value.lower()
    if value not in choices:
        raise InvalidArgumentError(f"'{key}' must be one of {', '.join(choices)}, got {value!r}")
    return value


def _list_arg(args: Dict[str, Any], key: str) -> Optional[List[str]]:
    value = args.get(key)
    if _is_missing(value):
        return None
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        raise InvalidArgumentError(f"'{key}' must be a list of strings")
    return [v for v in items if v] or None


async def _fan_out(calls: Dict[str, Callable[[], Awaitable[Any]]]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Run independent fetches concurrently; returns (results by key, errors by key)."""
    tasks = [BatchedTask(id=key, execute=call) for key, call in calls.items()]
    outcome = await ParallelEngine.execute_parallel(tasks, concurrency=len(tasks))
    return outcome["succeeded"], outcome["failed"]


# ============================================
# Identity Tools
# ============================================

async def search_identities(args: Dict[str, Any]) -> str:
    identities = await api.search_identities(_str_arg(args, "query"), _int_arg(args, "limit", DEFAULT_SEARCH_LIMIT))
    return formatters.to_json(identities)


async def get_identity(args: Dict[str, Any]) -> str:
    identity_id = args["identity_id"]
    identity = await api.get_identity(identity_id)

    calls: Dict[str, Callable[[], Awaitable[Any]]] = {}
    if _bool_arg(args, "include_accounts"):
        calls["accounts"] = lambda: api.get_identity_accounts(identity_id)
    if _bool_arg(args, "include_access"):
        calls["accessProfiles"] = lambda: api.get_identity_access_profiles(identity_id)
        calls["roles"] = lambda: api.get_identity_roles(identity_id)

    result: Dict[str, Any] = identity.to_dict()
    if calls:
        succeeded, failed = await _fan_out(calls)
        for key in calls:
            if key in succeeded:
                result[key] = succeeded[key]
        if failed:
            result["errors"] = failed
    return formatters.to_json(result)


async def get_identity_accounts(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.get_identity_accounts(args["identity_id"]))


async def get_identity_access(args: Dict[str, Any]) -> str:
    identity_id = args["identity_id"]
    succeeded, failed = await _fan_out({
        "accessProfiles": lambda: api.get_identity_access_profiles(identity_id),
        "roles": lambda: api.get_identity_roles(identity_id),
    })
    if not succeeded:
        raise SailPointError("; ".join(f"{key}: {error}" for key, error in failed.items()))

    result: Dict[str, Any] = dict(succeeded)
    if failed:
        result["errors"] = failed
    return formatters.to_json(result)


# ============================================
# Account / Access Tools
# ============================================

async def search_accounts(args: Dict[str, Any]) -> str:
    accounts = await api.search_accounts(_str_arg(args, "query"), _int_arg(args, "limit", DEFAULT_SEARCH_LIMIT))
    return formatters.to_json(accounts)


async def search_access_profiles(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.search_access_profiles(_str_arg(args, "query")))


async def search_roles(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.search_roles(_str_arg(args, "query")))


async def search_entitlements(args: Dict[str, Any]) -> str:
    entitlements = await api.search_entitlements(_str_arg(args, "query"), _int_arg(args, "limit", DEFAULT_SEARCH_LIMIT))
    return formatters.to_json(entitlements)


async def get_entitlement(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.get_entitlement(args["entitlement_id"]))


async def search_entitlements_by_source(args: Dict[str, Any]) -> str:
    entitlements = await api.search_entitlements_by_source(
        args["source_id"],
        _str_arg(args, "query"),
        _int_arg(args, "limit", DEFAULT_SEARCH_LIMIT),
    )
    return formatters.to_json(entitlements)


# ============================================
# Identity Profile Tools
# ============================================

async def get_identity_profiles(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.search_identity_profiles(_str_arg(args, "query")))


async def get_identity_profile(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.get_identity_profile(args["profile_id"]))


async def extract_profile_attribute_mappings(args: Dict[str, Any]) -> str:
    output_format = _choice_arg(args, "format", MAPPING_FORMATS, "table")
    matched = await profiles.collect_profiles(_str_arg(args, "profile_id"), _str_arg(args, "profile_name"))
    if not matched:
        return "No matching identity profiles found."

    mappings = profiles.collect_mappings(matched)

    if output_format == "json":
        return formatters.format_mappings_json(len(matched), mappings)
    if output_format == "csv":
        return formatters.format_mappings_csv(mappings)
    if not mappings:
        return formatters.NO_MAPPINGS
    return (
        f"Found {len(mappings)} attribute mappings across {len(matched)} profile(s):\n\n"
        f"{formatters.format_mappings_table(mappings)}"
    )


# ============================================
# Event Tools
# ============================================

async def search_identity_events(args: Dict[str, Any]) -> str:
    days_back = _int_arg(args, "days_back", DEFAULT_DAYS_BACK)
    output_format = _choice_arg(args, "format", EVENT_FORMATS, "detailed")

    identity_events = await events.get_identity_events(args["identity_id"], days_back, _list_arg(args, "event_types"))

    if output_format == "summary":
        return formatters.format_events_summary(identity_events, days_back)
    return formatters.format_identity_events(identity_events)


async def search_audit_events(args: Dict[str, Any]) -> str:
    audit_events = await api.search_audit_events(
        identity_id=_str_arg(args, "identity_id"),
        start_date=_str_arg(args, "start_date"),
        end_date=_str_arg(args, "end_date"),
        event_types=_list_arg(args, "event_types"),
        limit=_int_arg(args, "limit", DEFAULT_AUDIT_LIMIT),
    )
    return formatters.to_json(audit_events)


async def check_connection(args: Dict[str, Any]) -> str:
    return formatters.to_json(await api.check_connectivity())


# ============================================
# Registry
# ============================================

@dataclass(frozen=True)
class ToolSpec:
    name: str
    handler: Callable[[Dict[str, Any]], Awaitable[str]]
    required: Tuple[str, ...] = field(default=())


TOOLS: Dict[str, ToolSpec] = {
    spec.name: spec
    for spec in [
        ToolSpec("search_identities", search_identities),
        ToolSpec("get_identity", get_identity, ("identity_id",)),
        ToolSpec("get_identity_accounts", get_identity_accounts, ("identity_id",)),
        ToolSpec("search_accounts", search_accounts),
        ToolSpec("search_access_profiles", search_access_profiles),
        ToolSpec("search_roles", search_roles),
        ToolSpec("search_entitlements", search_entitlements),
        ToolSpec("get_entitlement", get_entitlement, ("entitlement_id",)),
        ToolSpec("search_entitlements_by_source", search_entitlements_by_source, ("source_id",)),
        ToolSpec("get_identity_access", get_identity_access, ("identity_id",)),
        ToolSpec("get_identity_profiles", get_identity_profiles),
        ToolSpec("get_identity_profile", get_identity_profile, ("profile_id",)),
        ToolSpec("extract_profile_attribute_mappings", extract_profile_attribute_mappings),
        ToolSpec("search_identity_events", search_identity_events, ("identity_id",)),
        ToolSpec("search_audit_events", search_audit_events),
        ToolSpec("test_connection", check_connection),
    ]
}


async def call_tool(name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResponse:
    args = {k: v for k, v in (arguments or {}).items() if v is not None}
    try:
        spec = TOOLS.get(name)
        if spec is None:
            raise UnknownToolError(name)
        for key in spec.required:
            if _is_missing(args.get(key)):
                raise MissingArgumentError(key)

        logger.info(f"[TOOL] {name}")
        return ToolResponse(text=await spec.handler(args))
    except UnknownToolError as e:
        logger.warning(f"[TOOL] {e}")
        return ToolResponse(text=str(e), is_error=True)
    except Exception as e:
        logger.error(f"[TOOL] {name} failed: {e}")
        return ToolResponse(text=f"Error: {e}", is_error=True)
