"""
Prompt templates offered to MCP clients.

Each prompt is static text with its arguments interpolated, returned as a single
user message.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from errors import MissingArgumentError, UnknownPromptError


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    arguments: Tuple[PromptArgument, ...]
    template: str

    def render(self, args: Optional[Dict[str, Any]] = None) -> str:
        args = args or {}
        values = {}
        for argument in self.arguments:
            value = args.get(argument.name)
            if argument.required and (value is None or str(value).strip() == ""):
                raise MissingArgumentError(argument.name)
            values[argument.name] = "" if value is None else str(value)
        return self.template.format(**values)


_PROMPT_LIST = [
    PromptTemplate(
        name="analyze_identity",
        description="Analyze an identity's access and provide security insights",
        arguments=(PromptArgument("identity_id", "ID of the identity to analyze"),),
        template=(
            'Analyze the identity "{identity_id}" and provide:\n'
            "1. Summary of the identity's basic information\n"
            "2. List of all accounts and their status\n"
            "3. Access profiles and roles assigned\n"
            "4. Potential security concerns (excessive access, dormant accounts, etc.)\n"
            "5. Recommendations for access optimization\n"
            "\n"
            "Use the get_identity tool with full details."
        ),
    ),
    PromptTemplate(
        name="find_orphaned_accounts",
        description="Find accounts without associated identities",
        arguments=(),
        template=(
            "Find and report on orphaned accounts (accounts without associated identities):\n"
            "1. Search for accounts\n"
            "2. Identify those without valid identity associations\n"
            "3. Group by source system\n"
            "4. Provide recommendations for cleanup\n"
            "\n"
            "Use the search_accounts tool to gather data."
        ),
    ),
    PromptTemplate(
        name="audit_user_access",
        description="Generate an access audit report for a user",
        arguments=(PromptArgument("identity_id", "ID of the identity to audit"),),
        template=(
            'Generate a comprehensive access audit report for identity "{identity_id}":\n'
            "1. Identity details and organizational context\n"
            "2. All accounts across all systems\n"
            "3. Complete list of access profiles and roles\n"
            "4. Recent access changes (use search_identity_events)\n"
            "5. Access review recommendations\n"
            "6. Compliance considerations\n"
            "\n"
            "Format as a professional audit report."
        ),
    ),
    PromptTemplate(
        name="compare_identities",
        description="Compare access between two identities",
        arguments=(
            PromptArgument("identity1_id", "First identity ID"),
            PromptArgument("identity2_id", "Second identity ID"),
        ),
        template=(
            'Compare access between identities "{identity1_id}" and "{identity2_id}":\n'
            "1. Show accounts unique to each identity\n"
            "2. Show shared accounts\n"
            "3. Compare access profiles and roles\n"
            "4. Highlight significant access differences\n"
            "5. Suggest reasons for differences based on department, role, etc."
        ),
    ),
    PromptTemplate(
        name="role_membership_report",
        description="Generate a report of who has a specific role",
        arguments=(PromptArgument("role_name", "Name of the role to report on"),),
        template=(
            'Generate a membership report for the role "{role_name}":\n'
            "1. Find the role using search_roles\n"
            "2. Search for identities with this role\n"
            "3. List all members with their details\n"
            "4. Identify patterns (departments, managers, etc.)\n"
            "5. Suggest whether role membership is appropriate\n"
            "\n"
            "Use search_identities with appropriate filters."
        ),
    ),
]

PROMPTS: Dict[str, PromptTemplate] = {p.name: p for p in _PROMPT_LIST}


def get_prompt(name: str) -> PromptTemplate:
    prompt = PROMPTS.get(name)
    if prompt is None:
        raise UnknownPromptError(name)
    return prompt


def render_prompt(name: str, args: Optional[Dict[str, Any]] = None) -> str:
    return get_prompt(name).render(args)

