"""
Omi MCP - exposes the Omi.me memories, action items and conversations API
to AI agent hosts through the Model Context Protocol (MCP).

This package provides a rate-limit aware REST client for Omi.me, thin
resource facades, the MCP tool dispatcher and a command-line entry point.
"""

__version__ = "1.0.0"
__author__ = "Omi MCP Development Team"
__description__ = "Omi.me integration for AI agents over the Model Context Protocol"
__license__ = "MIT"

# Package level imports for easy access
from omi_mcp.client import (
    OmiClient,
    OmiAPIError,
    UnauthorizedError,
    ForbiddenError,
    RateLimitedError,
    ServerError,
    UnknownAPIError,
    RateLimitStatus,
)
from omi_mcp.config import load_config
from omi_mcp.tools import ToolDispatcher, ToolValidationError
from omi_mcp.cli import main

__all__ = [
    "main",
    "load_config",
    "OmiClient",
    "OmiAPIError",
    "UnauthorizedError",
    "ForbiddenError",
    "RateLimitedError",
    "ServerError",
    "UnknownAPIError",
    "RateLimitStatus",
    "ToolDispatcher",
    "ToolValidationError",
    "__version__",
]
