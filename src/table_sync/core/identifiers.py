"""
Dialect-aware identifier quoting and table-name qualification.

Engines are grouped into families that share quoting rules, DDL syntax and
default-schema semantics.
"""

from __future__ import annotations

from dataclasses import dataclass

from table_sync.config import ConnectionConfig

MYSQL_FAMILY = frozenset({"mysql", "mariadb"})
POSTGRES_FAMILY = frozenset({"postgres", "kingbase", "highgo", "vastbase"})
SQLITE_FAMILY = frozenset({"sqlite", "d1"})

# Families whose CREATE TABLE output can be replayed verbatim on a sibling engine
NATIVE_DDL_FAMILIES = (MYSQL_FAMILY, SQLITE_FAMILY)

ADD_COLUMN_DIALECTS = MYSQL_FAMILY | POSTGRES_FAMILY | SQLITE_FAMILY
TRUNCATE_DIALECTS = MYSQL_FAMILY | POSTGRES_FAMILY

DEFAULT_SCHEMA = "public"


def normalize_dialect(db_type: str) -> str:
    return db_type.strip().lower()


def family_of(db_type: str) -> frozenset[str] | None:
    dialect = normalize_dialect(db_type)
    for family in (MYSQL_FAMILY, POSTGRES_FAMILY, SQLITE_FAMILY):
        if dialect in family:
            return family
    return None


def same_family(a: str, b: str) -> bool:
    family = family_of(a)
    return family is not None and family is family_of(b)


def shares_native_ddl(source_type: str, target_type: str) -> bool:
    """True when source DDL can be executed unchanged on the target."""
    family = family_of(source_type)
    return family in NATIVE_DDL_FAMILIES and family is family_of(target_type)


def supports_add_column(db_type: str) -> bool:
    return normalize_dialect(db_type) in ADD_COLUMN_DIALECTS


def quote_ident(db_type: str, ident: str) -> str:
    """Quote one identifier, doubling any embedded quote character."""
    if not ident:
        return ident
    if normalize_dialect(db_type) in MYSQL_FAMILY:
        return "`" + ident.replace("`", "``") + "`"
    return '"' + ident.replace('"', '""') + '"'


def quote_qualified_ident(db_type: str, ident: str) -> str:
    """Quote each dot-separated part of a possibly qualified name."""
    raw = ident.strip()
    if not raw:
        return raw

    parts = raw.split(".")
    if len(parts) <= 1:
        return quote_ident(db_type, raw)

    quoted = [quote_ident(db_type, p.strip()) for p in parts if p.strip()]
    if not quoted:
        return quote_ident(db_type, raw)
    return ".".join(quoted)


def normalize_schema_and_table(
    db_type: str, database: str, table_name: str
) -> tuple[str, str]:
    """
    Split a table reference into ``(schema, table)``.

    ``schema.table`` splits on the first dot. Otherwise postgres-family
    engines fall back to ``public`` and every other engine uses the
    connection's database name as the schema.
    """
    raw_table = table_name.strip()
    raw_db = database.strip()
    if not raw_table:
        return raw_db, raw_table

    schema, dot, table = raw_table.partition(".")
    if dot and schema.strip() and table.strip():
        return schema.strip(), table.strip()

    if normalize_dialect(db_type) in POSTGRES_FAMILY:
        return DEFAULT_SCHEMA, raw_table
    return raw_db, raw_table


def qualified_name_for_query(
    db_type: str, schema: str, table: str, original: str
) -> str:
    """Rebuild the (unquoted) table reference a dialect's SELECT/ALTER expects."""
    raw = original.strip()
    if not raw:
        return raw
    if "." in raw:
        return raw

    dialect = normalize_dialect(db_type)
    schema = schema.strip()
    if dialect in POSTGRES_FAMILY:
        if not table:
            return raw
        return f"{schema or DEFAULT_SCHEMA}.{table}"
    if dialect in MYSQL_FAMILY:
        if not schema or not table:
            return table
        return f"{schema}.{table}"
    return table


def sanitize_column_type(column_type: str) -> str:
    """Guard against metadata that cannot be spliced into DDL."""
    value = column_type.strip()
    if not value:
        return "TEXT"
    if any(ch in value for ch in "`;\n\r"):
        return "TEXT"
    return value


@dataclass
class TableRef:
    """How one requested table is addressed on each side of a job."""

    name: str
    source_schema: str
    source_table: str
    target_schema: str
    target_table: str
    source_query_table: str
    target_query_table: str

    @classmethod
    def resolve(
        cls, source: ConnectionConfig, target: ConnectionConfig, table_name: str
    ) -> "TableRef":
        source_schema, source_table = normalize_schema_and_table(
            source.type, source.database, table_name
        )
        target_schema, target_table = normalize_schema_and_table(
            target.type, target.database, table_name
        )
        return cls(
            name=table_name,
            source_schema=source_schema,
            source_table=source_table,
            target_schema=target_schema,
            target_table=target_table,
            source_query_table=qualified_name_for_query(
                source.type, source_schema, source_table, table_name
            ),
            target_query_table=qualified_name_for_query(
                target.type, target_schema, target_table, table_name
            ),
        )
