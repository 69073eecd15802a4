"""Invoice numbering, rendering, archival and issuance."""

from .models import BillTo, Invoice, InvoiceItem, InvoicePage, InvoiceStatus, InvoiceTotals, StoredDocument
from .numbering import InMemoryInvoiceCounter, InvoiceCounter, PostgresInvoiceCounter, format_invoice_number
from .pricing import compute_tax, price_invoice
from .renderer import format_money, render_invoice_pdf
from .repository import PostgresInvoiceRepository
from .service import InvoiceMailer, InvoiceRepository, InvoiceService
from .storage import InvoiceStorage, LocalInvoiceStorage, S3InvoiceStorage

__all__ = [
    "BillTo",
    "InMemoryInvoiceCounter",
    "Invoice",
    "InvoiceCounter",
    "InvoiceItem",
    "InvoiceMailer",
    "InvoicePage",
    "InvoiceRepository",
    "InvoiceService",
    "InvoiceStatus",
    "InvoiceStorage",
    "InvoiceTotals",
    "LocalInvoiceStorage",
    "PostgresInvoiceCounter",
    "PostgresInvoiceRepository",
    "S3InvoiceStorage",
    "StoredDocument",
    "compute_tax",
    "format_invoice_number",
    "format_money",
    "price_invoice",
    "render_invoice_pdf",
]
