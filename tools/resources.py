"""
Identity resources: each identity is readable as markdown at sailpoint://identity/{id}.
"""
import logging
from typing import List

from mcp import types

from batch import BatchedTask, ParallelEngine
from tools import api, formatters

logger = logging.getLogger("sailpoint_mcp")

URI_TEMPLATE = "sailpoint://identity/{identity_id}"
MIME_TYPE = "text/markdown"

# Identities advertised by resource listing
RESOURCE_LIST_LIMIT = 100


def identity_uri(identity_id: str) -> str:
    return URI_TEMPLATE.format(identity_id=identity_id)


async def list_identity_resources() -> List[types.Resource]:
    try:
        identities = await api.search_identities(None, RESOURCE_LIST_LIMIT)
    except Exception as e:
        logger.error(f"[RESOURCE] Error listing identities: {e}")
        return []

    return [
        types.Resource(
            uri=identity_uri(identity.id),
            name=f"Identity: {identity.name or identity.id}",
            description=f"{identity.display_name or identity.name} - {identity.email or 'No email'}",
            mimeType=MIME_TYPE,
        )
        for identity in identities
    ]


async def read_identity(identity_id: str) -> str:
    """
    Render one identity with its accounts, access profiles and roles.

    The identity itself must load; the three related lists are fetched
    concurrently and any that fail are left out of the document.
    """
    identity = await api.get_identity(identity_id)

    outcome = await ParallelEngine.execute_parallel([
        BatchedTask(id="accounts", execute=lambda: api.get_identity_accounts(identity_id)),
        BatchedTask(id="accessProfiles", execute=lambda: api.get_identity_access_profiles(identity_id)),
        BatchedTask(id="roles", execute=lambda: api.get_identity_roles(identity_id)),
    ])
    related = outcome["succeeded"]
    for key, error in outcome["failed"].items():
        logger.warning(f"[RESOURCE] {key} unavailable for identity {identity_id}: {error}")

    return formatters.format_identity_markdown(
        identity,
        related.get("accounts"),
        related.get("accessProfiles"),
        related.get("roles"),
    )
