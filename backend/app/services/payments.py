"""Application wiring for the payment and invoice services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...mail import create_email_provider, load_email_config
from ..config import BillingConfig, load_billing_config
from ..invoices import (
    InvoiceMailer,
    InvoiceService,
    InvoiceStorage,
    LocalInvoiceStorage,
    PostgresInvoiceCounter,
    PostgresInvoiceRepository,
    S3InvoiceStorage,
)
from ..payments import (
    PaymentGateway,
    PaymentService,
    PostgresPaymentRepository,
    RazorpayGateway,
    SandboxGateway,
)
from ..plans import PostgresPlanCatalog

logger = logging.getLogger("billing")

SANDBOX_SIGNING_SECRET = "sandbox_secret"


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


def build_gateway(config: BillingConfig) -> PaymentGateway:
    if config.uses_sandbox_gateway:
        logger.warning("Razorpay credentials missing; using the sandbox payment gateway")
        return SandboxGateway()
    return RazorpayGateway(key_id=config.gateway_key_id, key_secret=config.gateway_key_secret)


def build_invoice_storage(config: BillingConfig) -> InvoiceStorage:
    if config.invoice_storage_backend == "s3":
        return S3InvoiceStorage(
            bucket=config.invoice_bucket or "",
            prefix=config.invoice_prefix,
            region=config.aws_region,
            public_base_url=config.invoice_public_base_url,
            acl=config.invoice_s3_acl,
        )
    return LocalInvoiceStorage(
        root=config.invoice_local_dir,
        prefix=config.invoice_prefix,
        public_base_url=config.invoice_public_base_url,
    )


@lru_cache(maxsize=1)
def get_invoice_service() -> InvoiceService:
    config = get_billing_config()
    email_config = load_email_config()
    mailer = InvoiceMailer(
        provider=create_email_provider(email_config),
        config=email_config,
        app_name=config.app_name,
    )
    return InvoiceService(
        repository=PostgresInvoiceRepository(),
        employers=PostgresPaymentRepository(),
        counter=PostgresInvoiceCounter(),
        storage=build_invoice_storage(config),
        mailer=mailer,
        tax_rate=config.tax_rate,
        app_name=config.app_name,
    )


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    config = get_billing_config()
    signing_secret = config.gateway_key_secret
    if config.uses_sandbox_gateway:
        signing_secret = SANDBOX_SIGNING_SECRET
    return PaymentService(
        repository=PostgresPaymentRepository(),
        plans=PostgresPlanCatalog(),
        gateway=build_gateway(config),
        signing_secret=signing_secret,
        invoices=get_invoice_service(),
    )


__all__ = [
    "SANDBOX_SIGNING_SECRET",
    "build_gateway",
    "build_invoice_storage",
    "get_billing_config",
    "get_invoice_service",
    "get_payment_service",
]
