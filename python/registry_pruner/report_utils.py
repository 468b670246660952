"""
Utility functions for rendering and saving pruning reports.

This module provides functions to:
- Render selections and skipped items as tables
- Save run reports as JSON
"""
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

from tabulate import tabulate

from registry_pruner.logging_utils import get_logger

logger = get_logger(__name__)


# ============================================================================
# Table Rendering
# ============================================================================

def render_tag_table(repository: str, tags: Iterable[str]) -> str:
    """Render the tags selected in one repository as a table."""
    rows = [[repository, tag] for tag in sorted(tags)]
    return tabulate(rows, headers=["Repository", "Tag"], tablefmt="grid")


def render_skipped_table(skipped: Iterable[Any]) -> str:
    """Render skipped items (repository, tag, reason) as a table."""
    rows = [[item.repository, item.tag, item.reason] for item in skipped]
    return tabulate(rows, headers=["Repository", "Tag", "Reason"], tablefmt="grid")


# ============================================================================
# Report Saving
# ============================================================================

def _to_jsonable(data: Any) -> Any:
    """Recursively convert dataclasses, sets and dates into JSON types."""
    if is_dataclass(data) and not isinstance(data, type):
        return _to_jsonable(asdict(data))
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    if isinstance(data, (set, frozenset)):
        # Sorted for deterministic output
        return [_to_jsonable(item) for item in sorted(data)]
    if isinstance(data, dict):
        return {str(k): _to_jsonable(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


def save_json(path: str, data: Any) -> str:
    """
    Write a run report as indented JSON, creating parent directories.

    Args:
        path: Path to save the JSON file
        data: Data to save; dataclasses, sets and datetimes are converted

    Returns:
        Path to the saved file
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, "w") as f:
        json.dump(_to_jsonable(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)
