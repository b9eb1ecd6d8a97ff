"""
MCP Resources for the Library Circulation Server.

Resources are read-only endpoints addressed by ``library://`` URIs.
"""

from .circulation import circulation_resources

all_resources = circulation_resources

__all__ = [
    "all_resources",
    "circulation_resources",
]
