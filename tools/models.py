"""
Response shapes for the SailPoint endpoints this server reads.

Every field is optional apart from the ids the tools key on, and unknown keys are
kept, so the JSON handed back to agents carries the full upstream record.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class SailPointModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Reference(SailPointModel):
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None


class Identity(SailPointModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    manager: Optional[Reference] = None
    department: Optional[str] = None
    source: Optional[Reference] = None


class Account(SailPointModel):
    id: Optional[str] = None
    name: Optional[str] = None
    identity_id: Optional[str] = None
    source_id: Optional[str] = None
    source_name: Optional[str] = None
    disabled: Optional[bool] = None


class AccessProfile(SailPointModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    source: Optional[Reference] = None


class Role(SailPointModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[Reference] = None


class Entitlement(SailPointModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    attribute: Optional[str] = None
    value: Optional[str] = None
    source: Optional[Reference] = None
    privileged: Optional[bool] = None
    requestable: Optional[bool] = None


class Transform(SailPointModel):
    type: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    expression: Optional[str] = None
    attributes: Optional[Union[List[Any], Dict[str, Any]]] = None


class AttributeTransform(SailPointModel):
    # v3 profiles name these identityAttributeName / transformDefinition
    identity_attribute: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("identityAttribute", "identityAttributeName"),
        serialization_alias="identityAttribute",
    )
    transform: Optional[Transform] = Field(
        None,
        validation_alias=AliasChoices("transform", "transformDefinition"),
        serialization_alias="transform",
    )
    is_required: Optional[bool] = None


class IdentityAttributeConfig(SailPointModel):
    # v3 sends a boolean flag here, older revisions a list of attribute names
    enabled: Optional[Union[bool, List[str]]] = None
    attribute_transforms: Optional[List[AttributeTransform]] = None


class IdentityProfile(SailPointModel):
    id: str
    name: str = ""
    description: Optional[str] = None
    priority: Optional[int] = None
    authoritative_source: Optional[Reference] = None
    identity_attribute_config: Optional[IdentityAttributeConfig] = None


class AuditEvent(SailPointModel):
    id: Optional[str] = None
    created: Optional[str] = None
    type: str = ""
    action: str = ""
    actor: Optional[Reference] = None
    target: Optional[Reference] = None
    source: Optional[Reference] = None
    details: Optional[Union[Dict[str, Any], str]] = None
    attributes: Optional[Dict[str, Any]] = None
    result: Optional[str] = None


ChangeType = Literal["ADDED", "REMOVED", "MODIFIED"]


class IdentityEvent(SailPointModel):
    timestamp: Optional[str] = None
    event_type: str
    action: str
    item_type: str
    item_name: str
    item_id: str
    change_type: ChangeType
    actor: Optional[str] = None
    source: Optional[str] = None
    details: Optional[str] = None


class AttributeMapping(SailPointModel):
    profile_name: str
    profile_id: str
    target_attribute: str
    transform_type: str
    transform_name: str
    source_attributes: str
    is_required: bool
    expression: str
    description: str


def parse_list(model: type, data: Any) -> list:
    """Validate a JSON array from the API as a list of model."""
    return TypeAdapter(List[model]).validate_python(data or [])
