"""PostgreSQL persistence for invoices."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection
from .models import BillTo, Invoice, InvoiceItem, InvoiceStatus


def _row_to_invoice(row: dict) -> Invoice:
    return Invoice(
        invoice_id=row["invoice_id"],
        employer_id=str(row["employer_id"]),
        payment_id=row["payment_id"],
        subscription_id=row.get("subscription_id"),
        invoice_number=row["invoice_number"],
        invoice_date=row["invoice_date"],
        bill_to=BillTo.model_validate(row["bill_to"]),
        items=[InvoiceItem.model_validate(item) for item in row.get("items") or []],
        subtotal=Decimal(str(row["subtotal"])),
        tax_rate=Decimal(str(row["tax_rate"])),
        tax_amount=Decimal(str(row["tax_amount"])),
        total_amount=Decimal(str(row["total_amount"])),
        currency=row["currency"],
        pdf_url=row.get("pdf_url"),
        pdf_public_id=row.get("pdf_public_id"),
        notes=row.get("notes"),
        status=InvoiceStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresInvoiceRepository:
    """Concrete repository persisting invoices in PostgreSQL."""

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

    def create_invoice(self, invoice: Invoice) -> Invoice:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO invoices (
                    invoice_id, employer_id, payment_id, subscription_id, invoice_number,
                    invoice_date, bill_to, items, subtotal, tax_rate, tax_amount,
                    total_amount, currency, pdf_url, pdf_public_id, notes, status
                )
                VALUES (%(invoice_id)s, %(employer_id)s, %(payment_id)s, %(subscription_id)s,
                        %(invoice_number)s, %(invoice_date)s, %(bill_to)s, %(items)s, %(subtotal)s,
                        %(tax_rate)s, %(tax_amount)s, %(total_amount)s, %(currency)s, %(pdf_url)s,
                        %(pdf_public_id)s, %(notes)s, %(status)s)
                RETURNING *
                """,
                {
                    "invoice_id": invoice.invoice_id,
                    "employer_id": invoice.employer_id,
                    "payment_id": invoice.payment_id,
                    "subscription_id": invoice.subscription_id,
                    "invoice_number": invoice.invoice_number,
                    "invoice_date": invoice.invoice_date,
                    "bill_to": psycopg2.extras.Json(invoice.bill_to.model_dump(mode="json")),
                    "items": psycopg2.extras.Json([item.model_dump(mode="json") for item in invoice.items]),
                    "subtotal": invoice.subtotal,
                    "tax_rate": invoice.tax_rate,
                    "tax_amount": invoice.tax_amount,
                    "total_amount": invoice.total_amount,
                    "currency": invoice.currency,
                    "pdf_url": invoice.pdf_url,
                    "pdf_public_id": invoice.pdf_public_id,
                    "notes": invoice.notes,
                    "status": invoice.status.value,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist invoice")
            return _row_to_invoice(row)

    def get_invoice_by_number(self, invoice_number: str, employer_id: str) -> Optional[Invoice]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM invoices WHERE invoice_number = %s AND employer_id = %s LIMIT 1",
                (invoice_number, employer_id),
            )
            row = cursor.fetchone()
            return _row_to_invoice(row) if row else None

    def list_invoices(
        self,
        employer_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Invoice], int]:
        clauses = ["employer_id = %(employer_id)s"]
        params: dict = {"employer_id": employer_id, "offset": offset, "limit": limit}
        if start_date is not None:
            clauses.append("invoice_date >= %(start_date)s")
            params["start_date"] = start_date
        if end_date is not None:
            clauses.append("invoice_date <= %(end_date)s")
            params["end_date"] = end_date
        where = " AND ".join(clauses)

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM invoices
                WHERE {where}
                ORDER BY invoice_date DESC
                OFFSET %(offset)s
                LIMIT %(limit)s
                """,
                params,
            )
            rows = cursor.fetchall() or []
            cursor.execute(f"SELECT COUNT(*) AS total FROM invoices WHERE {where}", params)
            count_row = cursor.fetchone() or {"total": 0}
            return [_row_to_invoice(row) for row in rows], int(count_row["total"])

    def void_invoice(self, invoice_number: str, *, notes: Optional[str] = None) -> Optional[Invoice]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE invoices
                SET status = %(void)s,
                    notes = COALESCE(%(notes)s, notes),
                    updated_at = NOW()
                WHERE invoice_number = %(invoice_number)s
                  AND status = %(issued)s
                RETURNING *
                """,
                {
                    "void": InvoiceStatus.VOID.value,
                    "issued": InvoiceStatus.ISSUED.value,
                    "notes": notes,
                    "invoice_number": invoice_number,
                },
            )
            row = cursor.fetchone()
            return _row_to_invoice(row) if row else None


__all__ = ["PostgresInvoiceRepository"]
