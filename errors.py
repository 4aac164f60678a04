"""
Exception hierarchy for the SailPoint MCP server.
"""
from typing import Any, Optional


class SailPointError(Exception):
    """Base exception for SailPoint integration errors"""
    pass


class AuthenticationError(SailPointError):
    """Token exchange failed."""

    def __init__(self, message: str, status: Optional[int] = None, status_text: str = ""):
        super().__init__(message)
        self.status = status
        self.status_text = status_text


class ConfigurationError(AuthenticationError):
    """Required settings (base URL, client id, client secret) are missing."""
    pass


class ApiError(SailPointError):
    """Non-success HTTP status from a SailPoint endpoint."""

    def __init__(self, status: int, status_text: str = "", body: Any = None):
        self.status = status
        self.status_text = status_text
        self.body = body
        detail = f" - {body}" if body else ""
        super().__init__(f"SailPoint API error: {status} {status_text}{detail}")


class ToolError(SailPointError):
    pass


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class MissingArgumentError(ToolError):
    def __init__(self, argument: str):
        self.argument = argument
        super().__init__(f"Missing required argument: {argument}")


class InvalidArgumentError(ToolError):
    pass


class UnknownPromptError(SailPointError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown prompt: {name}")

