"""Idempotent provisioning of an Azure classroom lab for an MCP server."""

__version__ = "0.1.0"
