"""
SailPoint IdentityNow API functions: one per upstream resource or search.

All functions return validated models (see tools.models) and let ApiError /
AuthenticationError propagate to the tool router.
"""
import logging
from typing import Any, Dict, List, Optional

from client import get_client
from tools.models import (
    AccessProfile,
    Account,
    AuditEvent,
    Entitlement,
    Identity,
    IdentityProfile,
    Role,
    parse_list,
)

logger = logging.getLogger("sailpoint_mcp")

SEARCH_PATH = "/v2025/search"

# Page size ceiling for the list endpoints
MAX_PAGE_SIZE = 250

IDENTITY_SEARCH_FIELDS = ["id", "name", "email", "displayName", "firstName", "lastName", "manager", "department", "source"]


# ============================================
# Query Helpers
# ============================================

def escape_filter_value(value: str) -> str:
    """
    Escape a value for use inside a double-quoted SailPoint filter literal.

    Backslash and double quote are the only characters with meaning inside the
    literal. Backslashes go first to avoid double-escaping.
    """
    if not isinstance(value, str):
        value = str(value)
    return value.replace("\\", "\\\\").replace('"', '\\"')


def name_contains_filter(query: Optional[str]) -> Optional[str]:
    if not query:
        return None
    return f'name co "{escape_filter_value(query)}"'


def clamp_page_size(limit: int) -> int:
    return min(max(1, int(limit)), MAX_PAGE_SIZE)


def build_search_body(index: str, query: Optional[str] = None, includes: Optional[List[str]] = None) -> Dict[str, Any]:
    """Body for the generic search endpoint. Free text is passed through as-is."""
    body: Dict[str, Any] = {"indices": [index], "sort": ["name"]}
    if query:
        body["query"] = {"query": query}
    if includes:
        body["queryResultFilter"] = {"includes": includes}
    return body


def _as_list(response: Any) -> List[Any]:
    if response is None:
        return []
    if isinstance(response, list):
        return response
    if isinstance(response, dict) and isinstance(response.get("data"), list):
        return response["data"]
    return [response]


async def _search(body: Dict[str, Any]) -> List[Any]:
    return _as_list(await get_client().send(SEARCH_PATH, "POST", body))


# ============================================
# Identities
# ============================================

async def search_identities(query: Optional[str] = None, limit: int = MAX_PAGE_SIZE) -> List[Identity]:
    body = build_search_body("identities", query, IDENTITY_SEARCH_FIELDS)
    logger.info(f"Searching identities with query: {query!r}")
    results = await _search(body)
    return parse_list(Identity, results[:limit])


async def get_identity(identity_id: str) -> Identity:
    logger.info(f"Fetching identity by ID: {identity_id}")
    response = await get_client().send(f"/v2025/identities/{identity_id}")
    return Identity.model_validate(response)


async def _identity_access_items(identity_id: str, item_type: str) -> List[Any]:
    return _as_list(await get_client().send(
        f"/beta/historical-identities/{identity_id}/access-items",
        params={"type": item_type},
    ))


async def get_identity_accounts(identity_id: str) -> List[Account]:
    logger.info(f"Fetching accounts for identity ID: {identity_id}")
    return parse_list(Account, await _identity_access_items(identity_id, "account"))


async def get_identity_access_profiles(identity_id: str) -> List[AccessProfile]:
    logger.info(f"Fetching access profiles for identity ID: {identity_id}")
    return parse_list(AccessProfile, await _identity_access_items(identity_id, "access-profile"))


async def get_identity_roles(identity_id: str) -> List[Role]:
    logger.info(f"Fetching roles for identity ID: {identity_id}")
    return parse_list(Role, await _identity_access_items(identity_id, "role"))


# ============================================
# Accounts, Access Profiles, Roles
# ============================================

async def search_accounts(query: Optional[str] = None, limit: int = MAX_PAGE_SIZE) -> List[Account]:
    results = await _search(build_search_body("accounts", query))
    return parse_list(Account, results[:limit])


def _list_params(filters: Optional[str], limit: int = MAX_PAGE_SIZE) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if filters:
        params["filters"] = filters
    params["limit"] = clamp_page_size(limit)
    return params


async def search_access_profiles(query: Optional[str] = None) -> List[AccessProfile]:
    response = await get_client().send("/v2025/access-profiles", params=_list_params(name_contains_filter(query)))
    return parse_list(AccessProfile, _as_list(response))


async def search_roles(query: Optional[str] = None) -> List[Role]:
    response = await get_client().send("/v2025/roles", params=_list_params(name_contains_filter(query)))
    return parse_list(Role, _as_list(response))


# ============================================
# Entitlements
# ============================================

async def search_entitlements(query: Optional[str] = None, limit: int = MAX_PAGE_SIZE) -> List[Entitlement]:
    response = await get_client().send("/beta/entitlements", params=_list_params(name_contains_filter(query), limit))
    return parse_list(Entitlement, _as_list(response))


async def get_entitlement(entitlement_id: str) -> Entitlement:
    response = await get_client().send(f"/beta/entitlements/{entitlement_id}")
    return Entitlement.model_validate(response)


async def search_entitlements_by_source(source_id: str, query: Optional[str] = None, limit: int = MAX_PAGE_SIZE) -> List[Entitlement]:
    filters = f'source.id eq "{escape_filter_value(source_id)}"'
    if query:
        filters += f" and {name_contains_filter(query)}"
    response = await get_client().send("/beta/entitlements", params=_list_params(filters, limit))
    return parse_list(Entitlement, _as_list(response))


# ============================================
# Identity Profiles
# ============================================

async def list_identity_profiles() -> List[IdentityProfile]:
    return parse_list(IdentityProfile, _as_list(await get_client().send("/v3/identity-profiles")))


async def get_identity_profile(profile_id: str) -> IdentityProfile:
    response = await get_client().send(f"/v3/identity-profiles/{profile_id}")
    return IdentityProfile.model_validate(response)


async def search_identity_profiles(query: Optional[str] = None) -> List[IdentityProfile]:
    """List identity profiles, keeping those whose name or description contains query (case-insensitive)."""
    profiles = await list_identity_profiles()
    if not query:
        return profiles

    needle = query.lower()
    return [
        p for p in profiles
        if needle in p.name.lower() or (p.description and needle in p.description.lower())
    ]


# ============================================
# Audit Events
# ============================================

def build_audit_search_body(
    identity_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    event_types: Optional[List[str]] = None,
) -> Dict[str, Any]:
    must: List[Dict[str, Any]] = []
    if identity_id:
        must.append({"term": {"target.id": identity_id}})
    if start_date:
        must.append({"range": {"created": {"gte": start_date}}})
    if end_date:
        must.append({"range": {"created": {"lte": end_date}}})
    if event_types:
        must.append({"terms": {"type": list(event_types)}})

    return {
        "indices": ["events"],
        "queryDsl": {"bool": {"must": must}},
        "sort": ["-created"],
    }


async def search_audit_events(
    identity_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    event_types: Optional[List[str]] = None,
    limit: int = 100,
) -> List[AuditEvent]:
    body = build_audit_search_body(identity_id, start_date, end_date, event_types)
    results = await _search(body)
    return parse_list(AuditEvent, results[:limit])


# ============================================
# Connectivity
# ============================================

async def check_connectivity() -> Dict[str, Any]:
    """Authenticate and make the cheapest authenticated call there is."""
    client = get_client()
    token = await client.token_provider.get_token()
    profiles = _as_list(await client.send("/v3/identity-profiles", params={"limit": 1}))
    logger.info("SailPoint authentication and connectivity successful")
    return {
        "success": True,
        "baseUrl": client.config.base_url,
        "tokenExpiresIn": f"{max(0, token.expires_at - client.token_provider.clock()):.0f}s",
        "identityProfilesVisible": len(profiles) > 0,
    }
