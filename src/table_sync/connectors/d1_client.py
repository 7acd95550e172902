"""
Cloudflare D1 Database Driver.

Talks to Cloudflare D1 via its REST API:
- Query execution (single and batch)
- Rate limiting and retry logic
- Error handling with specific D1 error codes
- Schema introspection through SQLite pragmas
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, time as dt_time
from decimal import Decimal
from typing import Any

import httpx

from table_sync.config import ConnectionConfig
from table_sync.connectors.base import ChangeSet, ColumnDefinition, Row
from table_sync.connectors.sqlite import quote
from table_sync.exceptions import ApplyError, ConnectError, SyncError, TableNotFoundError


class D1Error(SyncError):
    """Base exception for D1 API errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class D1RateLimitError(D1Error):
    """Raised when rate limit is exceeded."""

    def __init__(self, retry_after: int = 60) -> None:
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")
        self.retry_after = retry_after


class D1StatementTooLongError(D1Error):
    """Raised when SQL statement exceeds size limit."""

    pass


class D1QueryTimeoutError(D1Error):
    """Raised when query exceeds time limit."""

    pass


@dataclass
class QueryResult:
    """Result of one D1 statement."""

    success: bool
    results: list[dict[str, Any]] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    rows_read: int = 0
    rows_written: int = 0
    changes: int = 0
    duration_ms: float = 0.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any], duration_ms: float) -> "QueryResult":
        meta = payload.get("meta", {}) or {}
        return cls(
            success=payload.get("success", True),
            results=payload.get("results", []) or [],
            meta=meta,
            rows_read=meta.get("rows_read", 0),
            rows_written=meta.get("rows_written", 0),
            changes=meta.get("changes", 0),
            duration_ms=duration_ms,
        )


def to_param(value: Any) -> Any:
    """
    Convert a row value into something the D1 JSON body can carry.

    BLOBs travel as lists of byte values, the shape D1 returns them in.
    Dates and times become ISO text.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return list(bytes(value))
    if isinstance(value, (date, dt_time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise ApplyError(f"Cannot send value of type {type(value).__name__} to D1")


def to_params(values: Any) -> list[Any]:
    return [to_param(v) for v in values]


def from_result_value(value: Any) -> Any:
    """D1 returns BLOB columns as lists of byte values; read them back as bytes."""
    if isinstance(value, list) and all(isinstance(b, int) and 0 <= b <= 255 for b in value):
        return bytes(value)
    return value


class D1Database:
    """
    Cloudflare D1 REST API driver.

    Connection fields used: ``account_id``, ``database`` (the D1 database
    UUID), ``api_token`` and ``timeout``.

    Example:
        db = D1Database()
        db.connect(ConnectionConfig(
            type="d1",
            account_id="your-account-id",
            database="your-database-id",
            api_token="your-api-token",
        ))
        rows, columns = db.query('SELECT * FROM "users" LIMIT 10')
    """

    BASE_URL = "https://api.cloudflare.com/client/v4"
    MAX_RETRIES = 3
    RETRY_DELAY = 1.0

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        """
        Initialize D1 driver.

        Args:
            transport: Optional httpx transport (used to stub the API in tests)
        """
        self.account_id = ""
        self.database_id = ""
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def database_url(self) -> str:
        """Base URL for database operations."""
        return (
            f"{self.BASE_URL}/accounts/{self.account_id}"
            f"/d1/database/{self.database_id}"
        )

    def connect(self, config: ConnectionConfig) -> None:
        """Create the HTTP client and check the database is reachable."""
        self.account_id = config.account_id.strip()
        self.database_id = config.database.strip()
        token = config.api_token.get_secret_value() or config.password.get_secret_value()

        missing = [
            name
            for name, value in (
                ("account_id", self.account_id),
                ("database", self.database_id),
                ("api_token", token),
            )
            if not value
        ]
        if missing:
            raise ConnectError(f"D1 connection requires {', '.join(missing)}")

        timeout = float(config.timeout) if config.timeout > 0 else 30.0
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=10.0,
                read=timeout + 10,
                write=30.0,
                pool=10.0,
            ),
            transport=self._transport,
        )

        try:
            self._request("GET", self.database_url)
        except D1Error as e:
            self.close()
            raise ConnectError(f"D1 database unreachable: {e}") from e

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "D1Database":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Make an API request with error handling and retry logic.

        Handles:
        - Rate limiting (honours Retry-After)
        - Transient transport errors with linear backoff
        - D1-specific error messages
        """
        if self._client is None:
            raise ConnectError("Connection not open")

        for attempt in range(self.MAX_RETRIES):
            try:
                response = self._client.request(method, url, **kwargs)

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", "60"))
                    if attempt < self.MAX_RETRIES - 1:
                        time.sleep(retry_after)
                        continue
                    raise D1RateLimitError(retry_after)

                data = response.json()

                if not data.get("success", True):
                    errors = data.get("errors", [])
                    error = errors[0] if errors else {}
                    message = error.get("message", "Unknown error")
                    code = str(error.get("code", ""))

                    if "statement too long" in message.lower():
                        raise D1StatementTooLongError(message, code)
                    if "timeout" in message.lower():
                        raise D1QueryTimeoutError(message, code)

                    raise D1Error(message, code, response.status_code)

                return data

            except httpx.TransportError as e:
                if attempt < self.MAX_RETRIES - 1:
                    time.sleep(self.RETRY_DELAY * (attempt + 1))
                    continue
                raise D1Error(f"Connection error: {e}") from e

        raise D1Error("Max retries exceeded")

    def execute(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        """
        Execute a single SQL statement.

        Args:
            sql: SQL statement
            params: Query parameters (for prepared statements)
        """
        body: dict[str, Any] = {"sql": sql}
        if params:
            body["params"] = params

        start_time = time.time()
        data = self._request("POST", f"{self.database_url}/query", json=body)
        duration = (time.time() - start_time) * 1000

        payloads = data.get("result") or [{}]
        return QueryResult.from_payload(payloads[0], duration)

    def execute_batch(self, statements: list[dict[str, Any]]) -> list[QueryResult]:
        """
        Execute multiple SQL statements in one request.

        D1 runs a batch as a single transaction: either every statement
        commits or none does.

        Args:
            statements: List of {"sql": str, "params": list} dicts
        """
        if not statements:
            return []

        start_time = time.time()
        data = self._request("POST", f"{self.database_url}/query", json=statements)
        duration = (time.time() - start_time) * 1000

        return [
            QueryResult.from_payload(payload, duration / len(statements))
            for payload in data.get("result", [])
        ]

    def query(self, sql: str) -> tuple[list[Row], list[str]]:
        result = self.execute(sql)
        columns = list(result.results[0].keys()) if result.results else []
        rows = [{k: from_result_value(v) for k, v in r.items()} for r in result.results]
        return rows, columns

    def exec(self, sql: str) -> int:
        return self.execute(sql).changes

    def get_columns(self, schema: str, table: str) -> list[ColumnDefinition]:
        """Get column information for a table. ``schema`` is ignored."""
        name = table.strip()
        if not name:
            raise ValueError("Table name required")

        result = self.execute(f"PRAGMA table_info({quote(name)})")
        if not result.results:
            raise TableNotFoundError(name)

        columns: list[ColumnDefinition] = []
        for row in result.results:
            default = row.get("dflt_value")
            columns.append(
                ColumnDefinition(
                    name=str(row.get("name", "")),
                    type=str(row.get("type") or ""),
                    nullable="NO" if row.get("notnull") else "YES",
                    key="PRI" if row.get("pk") else "",
                    default=None if default is None else str(default),
                )
            )
        return columns

    def get_create_statement(self, schema: str, table: str) -> str:
        result = self.execute(
            "SELECT sql FROM sqlite_master WHERE type='table' AND name=?1",
            [table],
        )
        if not result.results or not result.results[0].get("sql"):
            raise TableNotFoundError(table)
        return str(result.results[0]["sql"])

    def apply_changes(self, table: str, changes: ChangeSet) -> None:
        """Apply a change set as one batched (transactional) request."""
        target = quote(table)
        statements: list[dict[str, Any]] = []

        for pk in changes.deletes:
            if not pk:
                continue
            wheres = " AND ".join(f"{quote(k)} = ?{i + 1}" for i, k in enumerate(pk))
            statements.append(
                {
                    "sql": f"DELETE FROM {target} WHERE {wheres}",
                    "params": to_params(pk.values()),
                }
            )

        for update in changes.updates:
            if not update.values:
                continue
            if not update.keys:
                raise ApplyError("update requires keys")
            n = len(update.values)
            sets = ", ".join(f"{quote(k)} = ?{i + 1}" for i, k in enumerate(update.values))
            wheres = " AND ".join(
                f"{quote(k)} = ?{n + i + 1}" for i, k in enumerate(update.keys)
            )
            statements.append(
                {
                    "sql": f"UPDATE {target} SET {sets} WHERE {wheres}",
                    "params": to_params([*update.values.values(), *update.keys.values()]),
                }
            )

        for row in changes.inserts:
            if not row:
                continue
            col_str = ", ".join(quote(c) for c in row)
            placeholders = ", ".join(f"?{i + 1}" for i in range(len(row)))
            statements.append(
                {
                    "sql": f"INSERT INTO {target} ({col_str}) VALUES ({placeholders})",
                    "params": to_params(row.values()),
                }
            )

        try:
            results = self.execute_batch(statements)
        except D1Error as e:
            raise ApplyError(str(e)) from e

        failed = [r for r in results if not r.success]
        if failed:
            raise ApplyError(f"{len(failed)} statement(s) failed in batch")
