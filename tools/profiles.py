"""
Identity profile attribute mapping extraction.
"""
import json
import logging
from typing import List, Optional

from tools import api
from tools.models import AttributeMapping, IdentityProfile, Transform

logger = logging.getLogger("sailpoint_mcp")

NOT_APPLICABLE = "N/A"


def extract_source_attributes(transform: Optional[Transform]) -> str:
    if not transform or not transform.attributes:
        return NOT_APPLICABLE

    attributes = transform.attributes
    if isinstance(attributes, dict):
        attributes = [attributes]

    names = []
    for attr in attributes:
        if isinstance(attr, str):
            names.append(attr)
        elif isinstance(attr, dict) and attr.get("name"):
            names.append(str(attr["name"]))
        elif isinstance(attr, dict) and attr.get("sourceName"):
            names.append(f"{attr['sourceName']}.{attr.get('attributeName')}")
        else:
            names.append(json.dumps(attr, separators=(",", ":")))
    return ", ".join(names)


def format_attribute_mappings(profile: IdentityProfile) -> List[AttributeMapping]:
    """
    Flatten a profile's attribute configuration into one row per target attribute.

    Transforms come first, one row each; a transform with no target attribute
    is skipped. Every enabled attribute not already covered by a transform (or
    by an earlier enabled entry) adds a direct mapping row. A boolean
    `enabled` flag carries no attribute names and adds nothing.
    """
    mappings: List[AttributeMapping] = []
    config = profile.identity_attribute_config
    if not config:
        return mappings

    for attribute_transform in config.attribute_transforms or []:
        if not attribute_transform.identity_attribute:
            logger.debug(f"Skipping transform without target attribute in profile {profile.id}")
            continue
        transform = attribute_transform.transform
        mappings.append(AttributeMapping(
            profile_name=profile.name,
            profile_id=profile.id,
            target_attribute=attribute_transform.identity_attribute,
            transform_type=(transform.type if transform else None) or NOT_APPLICABLE,
            transform_name=(transform.name if transform else None) or NOT_APPLICABLE,
            source_attributes=extract_source_attributes(transform),
            is_required=bool(attribute_transform.is_required),
            expression=(transform.expression if transform else None) or NOT_APPLICABLE,
            description=(transform.description if transform else None) or NOT_APPLICABLE,
        ))

    enabled = config.enabled if isinstance(config.enabled, list) else []
    covered = {m.target_attribute for m in mappings}
    for attr in enabled:
        if attr in covered:
            continue
        covered.add(attr)
        mappings.append(AttributeMapping(
            profile_name=profile.name,
            profile_id=profile.id,
            target_attribute=attr,
            transform_type="Direct Mapping",
            transform_name=NOT_APPLICABLE,
            source_attributes=NOT_APPLICABLE,
            is_required=False,
            expression=NOT_APPLICABLE,
            description="Direct attribute mapping",
        ))

    return mappings


async def collect_profiles(profile_id: Optional[str] = None, profile_name: Optional[str] = None) -> List[IdentityProfile]:
    """One profile by id when given, otherwise every profile matching profile_name."""
    if profile_id:
        return [await api.get_identity_profile(profile_id)]
    return await api.search_identity_profiles(profile_name)


def collect_mappings(profiles: List[IdentityProfile]) -> List[AttributeMapping]:
    mappings: List[AttributeMapping] = []
    for profile in profiles:
        mappings.extend(format_attribute_mappings(profile))
    return mappings
