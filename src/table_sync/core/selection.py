"""Per-table operation switches and primary-key allow-lists."""

from __future__ import annotations

from table_sync.config import TableOptions
from table_sync.connectors.base import ChangeSet, Row, UpdateRow
from table_sync.core.diff import format_value


def filter_rows_by_pk(
    pk_column: str,
    rows: list[Row],
    enabled: bool,
    selected_pks: list[str],
) -> list[Row]:
    """Keep rows whose PK is selected; an empty selection keeps all rows."""
    if not enabled:
        return []
    if not rows or not selected_pks:
        return rows

    selected = set(selected_pks)
    return [row for row in rows if format_value(row.get(pk_column)).strip() in selected]


def filter_updates_by_pk(
    pk_column: str,
    updates: list[UpdateRow],
    enabled: bool,
    selected_pks: list[str],
) -> list[UpdateRow]:
    if not enabled:
        return []
    if not updates or not selected_pks:
        return updates

    selected = set(selected_pks)
    return [u for u in updates if format_value(u.keys.get(pk_column)).strip() in selected]


def apply_table_options(pk_column: str, changes: ChangeSet, options: TableOptions) -> ChangeSet:
    """Narrow a change set to the operations and rows the operator selected."""
    return ChangeSet(
        inserts=filter_rows_by_pk(
            pk_column, changes.inserts, options.insert, options.selected_insert_pks
        ),
        updates=filter_updates_by_pk(
            pk_column, changes.updates, options.update, options.selected_update_pks
        ),
        deletes=filter_rows_by_pk(
            pk_column, changes.deletes, options.delete, options.selected_delete_pks
        ),
    )
