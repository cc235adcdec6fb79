"""HTTP gateway exposing server-side tools over the MCP legacy and streamable transports."""

__version__ = "0.1.0"
