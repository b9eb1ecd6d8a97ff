"""Library Circulation MCP Server.

Circulation engine for a multi-branch library: loans, returns, extensions
and per-book reservation queues, exposed as MCP tools over a shared SQLite
database.
"""

__version__ = "0.1.0"
