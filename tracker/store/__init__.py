"""
Persistence for coverage events.

The action table is append-only: rows are inserted once and read back
with a full scan.
"""

from .action_store import ActionStore

__all__ = ["ActionStore"]
