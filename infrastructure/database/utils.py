"""
Database Utilities
==================

Shared helpers for the ops mixins and repositories.
"""

from typing import Any


def row_to_dict(row) -> dict[str, Any]:
    """
    Convert database row to dictionary.

    Args:
        row: Database row (sqlite3.Row, dict, or None)

    Returns:
        Dictionary representation of the row, empty for None
    """
    if row is None:
        return {}
    if isinstance(row, dict):
        return row
    return {k: row[k] for k in row.keys()}
