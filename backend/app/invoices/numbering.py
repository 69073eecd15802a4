"""Per-year invoice sequence counters."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Optional, Protocol

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection

INVOICE_NUMBER_PREFIX = "INV"


def format_invoice_number(year: int, seq: int) -> str:
    """Return ``INV-{year}-{seq:04d}``."""

    if seq < 1:
        raise ValueError("seq must be >= 1")
    return f"{INVOICE_NUMBER_PREFIX}-{year}-{seq:04d}"


class InvoiceCounter(Protocol):
    """Atomic increment-and-read sequence keyed by calendar year."""

    def next_value(self, year: int) -> int:
        """Increment the year's counter and return the new value."""


class PostgresInvoiceCounter:
    """Counter backed by a single upsert, safe across processes."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def next_value(self, year: int) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO invoice_counters (year, seq)
                VALUES (%s, 1)
                ON CONFLICT (year)
                DO UPDATE SET seq = invoice_counters.seq + 1, updated_at = NOW()
                RETURNING seq
                """,
                (year,),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to advance invoice counter")
            return int(row["seq"])


class InMemoryInvoiceCounter:
    """Thread-safe counter for a single process."""

    def __init__(self, initial: Optional[Dict[int, int]] = None) -> None:
        self._values: Dict[int, int] = dict(initial or {})
        self._lock = threading.Lock()

    def next_value(self, year: int) -> int:
        with self._lock:
            value = self._values.get(year, 0) + 1
            self._values[year] = value
            return value

    def current(self, year: int) -> int:
        with self._lock:
            return self._values.get(year, 0)


__all__ = [
    "InMemoryInvoiceCounter",
    "InvoiceCounter",
    "PostgresInvoiceCounter",
    "format_invoice_number",
]
