"""
Field-level diffing of record snapshots.

Snapshots are plain dictionaries. Before comparison they are normalised
into JSON-safe values so that equality is by value: Decimals compare
numerically (``Decimal('22.0') == Decimal('22.000')``), dates and UUIDs
compare as ISO strings, and nested dicts and lists compare by content.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.conf import settings


class ChangeKind(str, Enum):
    ADDED = 'added'
    REMOVED = 'removed'
    MODIFIED = 'modified'


@dataclass(frozen=True)
class FieldDiff:
    field: str
    change: ChangeKind
    old_value: Any = None
    new_value: Any = None

    def as_dict(self) -> dict:
        return {
            'field': self.field,
            'change': self.change.value,
            'old_value': self.old_value,
            'new_value': self.new_value,
        }


def _normalize_decimal(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return str(value.normalize())


def normalize_value(value: Any) -> Any:
    """Convert a single value into its JSON-safe, comparable form."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, Enum):
        return normalize_value(value.value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _normalize_decimal(Decimal(str(value)))
    if isinstance(value, Decimal):
        return _normalize_decimal(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(key): normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [normalize_value(item) for item in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=repr)
        return items
    if hasattr(value, 'as_dict'):
        return normalize_value(value.as_dict())
    return str(value)


def normalize_snapshot(snapshot: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    return normalize_value(dict(snapshot))


def default_ignored_fields() -> frozenset:
    return frozenset(getattr(settings, 'AUDIT_IGNORED_FIELDS', ('id', 'created_at', 'updated_at', 'version')))


def compute_diff(
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]],
    ignore: Optional[Iterable[str]] = None
) -> List[FieldDiff]:
    """
    Compute the field-level difference between two snapshots.

    Fields are compared after normalisation, so values that are equal by
    content are never reported. Bookkeeping fields (identity, timestamps,
    version counters) are skipped.

    Args:
        old: Snapshot before the change (None for creations)
        new: Snapshot after the change (None for deletions)
        ignore: Field names to skip; defaults to AUDIT_IGNORED_FIELDS

    Returns:
        FieldDiff list ordered by field name; empty when nothing changed
    """
    ignored = frozenset(ignore) if ignore is not None else default_ignored_fields()
    before = normalize_snapshot(old) or {}
    after = normalize_snapshot(new) or {}

    diffs = []
    for field in sorted(set(before) | set(after)):
        if field in ignored:
            continue
        if field not in before:
            diffs.append(FieldDiff(field, ChangeKind.ADDED, None, after[field]))
        elif field not in after:
            diffs.append(FieldDiff(field, ChangeKind.REMOVED, before[field], None))
        elif before[field] != after[field]:
            diffs.append(FieldDiff(field, ChangeKind.MODIFIED, before[field], after[field]))
    return diffs


def _format_value(value: Any) -> str:
    if value is None:
        return 'empty'
    if isinstance(value, (dict, list)):
        return f"{len(value)} item(s)"
    return str(value)


def summarize_changes(diffs: Iterable[Any]) -> str:
    """Human readable one-line summary, e.g. ``status: occupied -> available``."""
    parts = []
    for item in diffs:
        if isinstance(item, FieldDiff):
            item = item.as_dict()
        change = item['change']
        if change == ChangeKind.ADDED.value:
            parts.append(f"{item['field']} set to {_format_value(item['new_value'])}")
        elif change == ChangeKind.REMOVED.value:
            parts.append(f"{item['field']} removed")
        else:
            parts.append(
                f"{item['field']}: {_format_value(item['old_value'])} -> {_format_value(item['new_value'])}"
            )
    return '; '.join(parts) if parts else 'No changes'
