"""Billing configuration loaded from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

DEFAULT_TAX_RATE = Decimal("18")
DEFAULT_INVOICE_PREFIX = "jobzee/invoices"
STORAGE_BACKENDS = frozenset({"local", "s3"})


@dataclass(frozen=True)
class BillingConfig:
    """Gateway credentials, tax settings and invoice archival options."""

    gateway_key_id: str
    gateway_key_secret: str
    tax_rate: Decimal = DEFAULT_TAX_RATE
    default_currency: str = "INR"
    invoice_storage_backend: str = "local"
    invoice_bucket: Optional[str] = None
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX
    invoice_public_base_url: Optional[str] = None
    invoice_s3_acl: Optional[str] = None
    aws_region: Optional[str] = None
    invoice_local_dir: str = "var/invoices"
    app_name: str = "JobZee"

    @property
    def uses_sandbox_gateway(self) -> bool:
        return not self.gateway_key_id and not self.gateway_key_secret


def _to_decimal(value: Optional[str], *, default: Decimal) -> Decimal:
    if value is None or value.strip() == "":
        return default
    try:
        return Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Expected decimal value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    tax_rate = _to_decimal(env_mapping.get("GST_RATE"), default=DEFAULT_TAX_RATE)
    if tax_rate < 0:
        raise ValueError("GST_RATE must be >= 0")

    storage_backend = (env_mapping.get("INVOICE_STORAGE") or "local").strip().lower()
    if storage_backend not in STORAGE_BACKENDS:
        raise ValueError(f"Unsupported INVOICE_STORAGE backend: {storage_backend!r}")

    bucket = (env_mapping.get("INVOICE_S3_BUCKET") or "").strip() or None
    if storage_backend == "s3" and not bucket:
        raise ValueError("INVOICE_S3_BUCKET is required when INVOICE_STORAGE=s3")

    public_base_url = (env_mapping.get("INVOICE_PUBLIC_BASE_URL") or "").strip() or None
    s3_acl = (env_mapping.get("INVOICE_S3_ACL") or "").strip() or None
    # Invoice URLs are handed to employers as-is.
    if storage_backend == "s3" and not public_base_url and s3_acl != "public-read":
        raise ValueError(
            "INVOICE_STORAGE=s3 needs INVOICE_PUBLIC_BASE_URL or INVOICE_S3_ACL=public-read"
        )

    return BillingConfig(
        gateway_key_id=(env_mapping.get("RAZORPAY_KEY_ID") or "").strip(),
        gateway_key_secret=(env_mapping.get("RAZORPAY_KEY_SECRET") or "").strip(),
        tax_rate=tax_rate,
        default_currency=(env_mapping.get("BILLING_CURRENCY") or "INR").strip().upper(),
        invoice_storage_backend=storage_backend,
        invoice_bucket=bucket,
        invoice_prefix=(env_mapping.get("INVOICE_S3_PREFIX") or DEFAULT_INVOICE_PREFIX).strip("/"),
        invoice_public_base_url=public_base_url.rstrip("/") if public_base_url else None,
        invoice_s3_acl=s3_acl,
        aws_region=(env_mapping.get("AWS_REGION") or "").strip() or None,
        invoice_local_dir=env_mapping.get("INVOICE_LOCAL_DIR") or "var/invoices",
        app_name=env_mapping.get("APP_NAME") or "JobZee",
    )


__all__ = ["BillingConfig", "DEFAULT_TAX_RATE", "load_billing_config"]
