"""Work-item collaborator: read-only access to the items recall is run for.

The aggregator only needs two reads, expressed as the ``WorkItemSource``
protocol. ``YamlWorkItemSource`` serves them from a YAML export with a
top-level ``workitems:`` list::

    workitems:
      - id: WI_0042
        project_id: web
        title: Fix login redirect loop
        description: Users bounce between /login and /home ...
        status: in_progress
        type: bug
        created_at: 2026-03-01T10:00:00Z
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Protocol, Sequence

import yaml

logger = logging.getLogger(__name__)


@dataclass
class WorkItem:
    id: str
    project_id: str
    title: str
    description: str | None = None
    status: str | None = None
    type: str | None = None
    created_at: datetime | None = None


class WorkItemSource(Protocol):
    """Read-only work-item boundary used by the context aggregator."""

    async def get_work_item(self, item_id: str) -> WorkItem | None:
        """Return the item, or None if it does not exist."""
        ...

    async def list_recent_items(
        self,
        project_id: str,
        exclude_id: str,
        statuses: Sequence[str],
        limit: int,
    ) -> list[WorkItem]:
        """Newest-first items of *project_id* in *statuses*, excluding *exclude_id*."""
        ...


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a YAML scalar (datetime, date, or ISO string) to an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparseable created_at value: %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_work_item(raw: dict[str, Any]) -> WorkItem:
    return WorkItem(
        id=str(raw["id"]),
        project_id=str(raw.get("project_id") or raw.get("project") or ""),
        title=str(raw.get("title") or ""),
        description=raw.get("description"),
        status=raw.get("status"),
        type=raw.get("type"),
        created_at=parse_timestamp(raw.get("created_at")),
    )


class YamlWorkItemSource:
    """Work items loaded once from a YAML file.

    Args:
        path: YAML file with a top-level ``workitems:`` list.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file is not a mapping with a ``workitems`` list,
            or an entry has no ``id``.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path}: expected a mapping with a 'workitems' list")
        raw_items = data.get("workitems") or []
        if not isinstance(raw_items, list):
            raise ValueError(f"{self.path}: 'workitems' must be a list")
        items: list[WorkItem] = []
        for raw in raw_items:
            if not isinstance(raw, dict) or "id" not in raw:
                raise ValueError(f"{self.path}: every work item needs an 'id'")
            items.append(_to_work_item(raw))
        self._items = {item.id: item for item in items}

    async def get_work_item(self, item_id: str) -> WorkItem | None:
        return self._items.get(item_id)

    async def list_recent_items(
        self,
        project_id: str,
        exclude_id: str,
        statuses: Sequence[str],
        limit: int,
    ) -> list[WorkItem]:
        wanted = set(statuses)
        matches = [
            item
            for item in self._items.values()
            if item.project_id == project_id
            and item.id != exclude_id
            and item.status in wanted
        ]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        matches.sort(key=lambda i: i.created_at or oldest, reverse=True)
        return matches[:limit]
