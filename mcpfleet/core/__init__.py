"""
MCP Fleet core: configuration and shared error types.
"""
