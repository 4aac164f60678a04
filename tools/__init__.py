# Tools package
"""
SailPoint MCP Server Tools

Modules:
- models: Pydantic models for SailPoint API records
- api: SailPoint API queries for identities, accounts, access, profiles and audit events
- events: Audit event classification into identity access changes
- profiles: Identity profile attribute mapping extraction
- formatters: Markdown, table, CSV and JSON rendering
- router: Tool registry and dispatch
- resources: Identity resources (sailpoint://identity/{id})
- prompts: Prompt templates
"""

from . import models, api, events, profiles, formatters, router, resources, prompts

__all__ = ["models", "api", "events", "profiles", "formatters", "router", "resources", "prompts"]
