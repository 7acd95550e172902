"""
Snapshot diffing.

Rows are matched by the string form of their single primary-key column and
compared column by column on string form too. This mirrors what operators
see in the UI, but values that render differently across engines (trailing
zeros, timezone suffixes) show up as changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from table_sync.connectors.base import ChangeSet, ColumnDefinition, Row, UpdateRow
from table_sync.exceptions import PrimaryKeyError

NIL = "<nil>"


def format_value(value: Any) -> str:
    """Default string form of a column value, used for identity and equality."""
    if value is None:
        return NIL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def pk_key(value: Any) -> str | None:
    """Identity key for a PK value, or None when the row cannot be matched."""
    if value is None:
        return None
    key = format_value(value).strip()
    if not key or key == NIL:
        return None
    return key


def resolve_primary_key(columns: Sequence[ColumnDefinition]) -> str:
    """Return the single PK column name or raise PrimaryKeyError."""
    pk_columns = [c.name for c in columns if c.is_primary_key]
    if not pk_columns:
        raise PrimaryKeyError("No primary key; data compare/sync is not supported", [])
    if len(pk_columns) > 1:
        raise PrimaryKeyError(
            f"Composite primary key ({','.join(pk_columns)}); "
            "data compare/sync is not supported",
            pk_columns,
        )
    return pk_columns[0]


def changed_columns(source: Row, target: Row) -> list[str]:
    """Source columns whose string form differs from the target row."""
    return [
        name
        for name, value in source.items()
        if format_value(value) != format_value(target.get(name))
    ]


@dataclass
class RowChange:
    """A row present on both sides with at least one differing column."""

    pk: str
    changed: list[str]
    source: Row
    target: Row


@dataclass
class TableDiff:
    """Full partition of two snapshots keyed by one PK column."""

    pk_column: str
    inserts: list[tuple[str, Row]] = field(default_factory=list)
    updates: list[RowChange] = field(default_factory=list)
    deletes: list[tuple[str, Row]] = field(default_factory=list)
    same: int = 0

    def to_change_set(self, include_deletes: bool = True) -> ChangeSet:
        """Build the change set the target needs to mirror the source."""
        pk = self.pk_column
        return ChangeSet(
            inserts=[row for _, row in self.inserts],
            updates=[
                UpdateRow(
                    keys={pk: u.source[pk]},
                    values={name: u.source[name] for name in u.changed},
                )
                for u in self.updates
            ],
            deletes=(
                [{pk: row[pk]} for _, row in self.deletes] if include_deletes else []
            ),
        )


def diff_snapshots(
    pk_column: str,
    source_rows: Iterable[Row],
    target_rows: Iterable[Row],
) -> TableDiff:
    """
    Partition source and target rows into inserts, updates, deletes and same.

    Rows whose PK is null or renders empty are ignored on both sides.
    """
    target_map: dict[str, Row] = {}
    for row in target_rows:
        key = pk_key(row.get(pk_column))
        if key is not None:
            target_map[key] = row

    diff = TableDiff(pk_column=pk_column)
    seen: set[str] = set()

    for row in source_rows:
        key = pk_key(row.get(pk_column))
        if key is None:
            continue
        seen.add(key)

        target = target_map.get(key)
        if target is None:
            diff.inserts.append((key, row))
            continue

        changed = changed_columns(row, target)
        if changed:
            diff.updates.append(RowChange(pk=key, changed=changed, source=row, target=target))
        else:
            diff.same += 1

    diff.deletes = [(key, row) for key, row in target_map.items() if key not in seen]
    return diff


@dataclass
class TableDiffSummary:
    """Counts-only view of one table's diff."""

    table: str
    pk_column: str = ""
    can_sync: bool = False
    inserts: int = 0
    updates: int = 0
    deletes: int = 0
    same: int = 0
    message: str = ""
    has_schema: bool = False

    @classmethod
    def from_diff(cls, table: str, diff: TableDiff, has_schema: bool) -> "TableDiffSummary":
        return cls(
            table=table,
            pk_column=diff.pk_column,
            can_sync=True,
            inserts=len(diff.inserts),
            updates=len(diff.updates),
            deletes=len(diff.deletes),
            same=diff.same,
            has_schema=has_schema,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "table": self.table,
            "canSync": self.can_sync,
            "inserts": self.inserts,
            "updates": self.updates,
            "deletes": self.deletes,
            "same": self.same,
        }
        if self.pk_column:
            data["pkColumn"] = self.pk_column
        if self.message:
            data["message"] = self.message
        if self.has_schema:
            data["hasSchema"] = True
        return data


@dataclass
class PreviewRow:
    pk: str
    row: Row


@dataclass
class PreviewUpdateRow:
    pk: str
    changed_columns: list[str]
    source: Row
    target: Row


@dataclass
class TableDiffPreview:
    """Bounded sample of one table's diff for operator review."""

    table: str
    pk_column: str
    total_inserts: int = 0
    total_updates: int = 0
    total_deletes: int = 0
    inserts: list[PreviewRow] = field(default_factory=list)
    updates: list[PreviewUpdateRow] = field(default_factory=list)
    deletes: list[PreviewRow] = field(default_factory=list)

    @classmethod
    def from_diff(cls, table: str, diff: TableDiff, limit: int) -> "TableDiffPreview":
        return cls(
            table=table,
            pk_column=diff.pk_column,
            total_inserts=len(diff.inserts),
            total_updates=len(diff.updates),
            total_deletes=len(diff.deletes),
            inserts=[PreviewRow(pk=k, row=r) for k, r in diff.inserts[:limit]],
            updates=[
                PreviewUpdateRow(
                    pk=u.pk, changed_columns=u.changed, source=u.source, target=u.target
                )
                for u in diff.updates[:limit]
            ],
            deletes=[PreviewRow(pk=k, row=r) for k, r in diff.deletes[:limit]],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "pkColumn": self.pk_column,
            "totalInserts": self.total_inserts,
            "totalUpdates": self.total_updates,
            "totalDeletes": self.total_deletes,
            "inserts": [{"pk": r.pk, "row": r.row} for r in self.inserts],
            "updates": [
                {
                    "pk": u.pk,
                    "changedColumns": u.changed_columns,
                    "source": u.source,
                    "target": u.target,
                }
                for u in self.updates
            ],
            "deletes": [{"pk": r.pk, "row": r.row} for r in self.deletes],
        }
