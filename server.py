"""
SailPoint IdentityNow MCP Server - Model Context Protocol server for SailPoint IdentityNow

This is the main entry point for the MCP server.
"""
import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from mcp import types
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

# Ensure the project root is in sys.path for imports
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from client import SailPointClient, SailPointConfig, mask_secret, set_client
from errors import ConfigurationError, SailPointError
from tools import api, prompts, resources, router

logger = logging.getLogger("sailpoint_mcp")


class SailPointMCP(FastMCP):
    """FastMCP server whose resource listing includes one entry per identity."""

    async def list_resources(self) -> List[types.Resource]:
        static = await super().list_resources()
        return static + await resources.list_identity_resources()


# Initialize FastMCP
mcp = SailPointMCP("sailpoint-mcp-server")


async def _run(name: str, args: Dict[str, Any]) -> str:
    response = await router.call_tool(name, args)
    if response.is_error:
        raise ToolError(response.text)
    return response.text


# ===========================================
# IDENTITY TOOLS
# ===========================================

@mcp.tool()
async def search_identities(query: Optional[str] = None, limit: int = 50) -> str:
    """Search for identities in SailPoint. Returns matching identities with basic information.

    Args:
        query: Search query (searches across name, email, etc.)
        limit: Maximum number of results to return (default: 50)
    """
    return await _run("search_identities", {"query": query, "limit": limit})


@mcp.tool()
async def get_identity(identity_id: str, include_accounts: bool = True, include_access: bool = True) -> str:
    """Get detailed information about a specific identity by ID.

    Args:
        identity_id: The ID of the identity to retrieve
        include_accounts: Include associated accounts (default: true)
        include_access: Include access profiles and roles (default: true)
    """
    return await _run("get_identity", {
        "identity_id": identity_id,
        "include_accounts": include_accounts,
        "include_access": include_access,
    })


@mcp.tool()
async def get_identity_accounts(identity_id: str) -> str:
    """Get all accounts associated with an identity."""
    return await _run("get_identity_accounts", {"identity_id": identity_id})


@mcp.tool()
async def get_identity_access(identity_id: str) -> str:
    """Get all access profiles and roles for an identity."""
    return await _run("get_identity_access", {"identity_id": identity_id})


# ===========================================
# ACCOUNT / ACCESS TOOLS
# ===========================================

@mcp.tool()
async def search_accounts(query: Optional[str] = None, limit: int = 50) -> str:
    """Search for accounts in SailPoint.

    Args:
        query: Search query for accounts
        limit: Maximum number of results (default: 50)
    """
    return await _run("search_accounts", {"query": query, "limit": limit})


@mcp.tool()
async def search_access_profiles(query: Optional[str] = None) -> str:
    """Search for access profiles in SailPoint by name (contains match)."""
    return await _run("search_access_profiles", {"query": query})


@mcp.tool()
async def search_roles(query: Optional[str] = None) -> str:
    """Search for roles in SailPoint by name (contains match)."""
    return await _run("search_roles", {"query": query})


@mcp.tool()
async def search_entitlements(query: Optional[str] = None, limit: int = 50) -> str:
    """Search for entitlements in SailPoint by name (contains match).

    Args:
        query: Text the entitlement name must contain
        limit: Maximum number of results, up to 250 (default: 50)
    """
    return await _run("search_entitlements", {"query": query, "limit": limit})


@mcp.tool()
async def get_entitlement(entitlement_id: str) -> str:
    """Get detailed information about a specific entitlement by ID."""
    return await _run("get_entitlement", {"entitlement_id": entitlement_id})


@mcp.tool()
async def search_entitlements_by_source(source_id: str, query: Optional[str] = None, limit: int = 50) -> str:
    """List the entitlements of one source, optionally filtered by name.

    Args:
        source_id: Required. The ID of the source.
        query: Text the entitlement name must contain
        limit: Maximum number of results, up to 250 (default: 50)
    """
    return await _run("search_entitlements_by_source", {"source_id": source_id, "query": query, "limit": limit})


# ===========================================
# IDENTITY PROFILE TOOLS
# ===========================================

@mcp.tool()
async def get_identity_profiles(query: Optional[str] = None) -> str:
    """Get all identity profiles in IdentityNow.

    Args:
        query: Optional search query to filter profiles by name or description
    """
    return await _run("get_identity_profiles", {"query": query})


@mcp.tool()
async def get_identity_profile(profile_id: str) -> str:
    """Get detailed information about a specific identity profile by ID."""
    return await _run("get_identity_profile", {"profile_id": profile_id})


@mcp.tool()
async def extract_profile_attribute_mappings(
    profile_id: Optional[str] = None,
    profile_name: Optional[str] = None,
    format: Literal["table", "json", "csv"] = "table",
) -> str:
    """Extract and format attribute mapping settings for identity profile(s).

    Args:
        profile_id: Specific profile ID to extract (optional)
        profile_name: Filter by profile name (partial match, optional)
        format: Output format: 'table', 'json', or 'csv' (default: 'table')
    """
    return await _run("extract_profile_attribute_mappings", {
        "profile_id": profile_id,
        "profile_name": profile_name,
        "format": format,
    })


# ===========================================
# EVENT TOOLS
# ===========================================

@mcp.tool()
async def search_identity_events(
    identity_id: str,
    days_back: int = 30,
    event_types: Optional[List[str]] = None,
    format: Literal["detailed", "summary"] = "detailed",
) -> str:
    """Show the access change history (roles, access profiles, entitlements) of an identity.

    Args:
        identity_id: Required. The ID of the identity.
        days_back: How many days of history to include (default: 30)
        event_types: Audit event types to include.
            Default: role, access profile and entitlement ASSIGNED/REMOVED events.
        format: 'detailed' (grouped by day) or 'summary' (counts plus one line per change)
    """
    return await _run("search_identity_events", {
        "identity_id": identity_id,
        "days_back": days_back,
        "event_types": event_types,
        "format": format,
    })


@mcp.tool()
async def search_audit_events(
    identity_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    event_types: Optional[List[str]] = None,
    limit: int = 100,
) -> str:
    """Search raw audit events, newest first.

    Args:
        identity_id: Only events targeting this identity
        start_date: ISO-8601 lower bound on the event creation time
        end_date: ISO-8601 upper bound on the event creation time
        event_types: Only events of these types (e.g. ROLE_ASSIGNED)
        limit: Maximum number of results (default: 100)
    """
    return await _run("search_audit_events", {
        "identity_id": identity_id,
        "start_date": start_date,
        "end_date": end_date,
        "event_types": event_types,
        "limit": limit,
    })


@mcp.tool()
async def test_connection() -> str:
    """Test connection to the SailPoint tenant: authenticates and makes one API call."""
    return await _run("test_connection", {})


# ===========================================
# RESOURCES
# ===========================================

@mcp.resource(resources.URI_TEMPLATE, mime_type=resources.MIME_TYPE)
async def identity_resource(identity_id: str) -> str:
    """An identity with its accounts, access profiles and roles, as markdown."""
    return await resources.read_identity(identity_id)


# ===========================================
# PROMPTS
# ===========================================

@mcp.prompt(name="analyze_identity", description=prompts.PROMPTS["analyze_identity"].description)
def analyze_identity(identity_id: str) -> str:
    return prompts.render_prompt("analyze_identity", {"identity_id": identity_id})


@mcp.prompt(name="find_orphaned_accounts", description=prompts.PROMPTS["find_orphaned_accounts"].description)
def find_orphaned_accounts() -> str:
    return prompts.render_prompt("find_orphaned_accounts")


@mcp.prompt(name="audit_user_access", description=prompts.PROMPTS["audit_user_access"].description)
def audit_user_access(identity_id: str) -> str:
    return prompts.render_prompt("audit_user_access", {"identity_id": identity_id})


@mcp.prompt(name="compare_identities", description=prompts.PROMPTS["compare_identities"].description)
def compare_identities(identity1_id: str, identity2_id: str) -> str:
    return prompts.render_prompt("compare_identities", {"identity1_id": identity1_id, "identity2_id": identity2_id})


@mcp.prompt(name="role_membership_report", description=prompts.PROMPTS["role_membership_report"].description)
def role_membership_report(role_name: str) -> str:
    return prompts.render_prompt("role_membership_report", {"role_name": role_name})


# ===========================================
# STARTUP
# ===========================================

def validate_environment_variables() -> SailPointConfig:
    """
    Validate required environment variables before MCP server starts.
    Exits with code 1 if validation fails.
    """
    try:
        config = SailPointConfig.from_env()
    except ConfigurationError as e:
        logger.error(f"CRITICAL: {e}")
        print(f"❌ ERROR: {e}", file=sys.stderr)
        print("Create a .env file with SAILPOINT_BASE_URL, SAILPOINT_CLIENT_ID and SAILPOINT_CLIENT_SECRET", file=sys.stderr)
        sys.exit(1)

    logger.info(f"Environment validation passed: SAILPOINT_BASE_URL={config.base_url}, "
                f"SAILPOINT_CLIENT_ID={mask_secret(config.client_id)}")
    return config


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="sailpoint-mcp", description="SailPoint IdentityNow MCP server (stdio)")
    parser.add_argument("--check", action="store_true", help="verify credentials and connectivity, then exit")
    options = parser.parse_args(argv)

    client = SailPointClient(validate_environment_variables())
    set_client(client)

    try:
        if options.check:
            print(asyncio.run(api.check_connectivity()))
            return
        asyncio.run(client.token_provider.get_token())
    except SailPointError as e:
        logger.error(f"CRITICAL: SailPoint authentication failed: {e}")
        print(f"❌ ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info("SailPoint authentication successful, serving on stdio")
    mcp.run()


if __name__ == "__main__":
    main()
