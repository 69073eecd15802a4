"""Durable archival of rendered invoice PDFs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config

from .models import StoredDocument

logger = logging.getLogger(__name__)


class InvoiceStorage(Protocol):
    """Stores a PDF under a namespaced key and returns where it lives."""

    def save(self, key: str, content: bytes) -> StoredDocument:
        ...


def _join_key(prefix: str, key: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/{key}" if prefix else key


class S3InvoiceStorage:
    """Archive invoices in an S3 bucket.

    The returned URL is stored on the invoice and mailed to the employer, so it
    must be readable without credentials: serve the prefix through
    ``public_base_url`` (a CDN or a bucket policy) or upload with
    ``acl="public-read"`` on a bucket that allows object ACLs.
    """

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        acl: Optional[str] = None,
        client: Any = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket must be provided")
        self.bucket = bucket
        self.prefix = prefix
        self.region = region
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.acl = acl
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    def _public_url(self, object_key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{object_key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{object_key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{object_key}"

    def save(self, key: str, content: bytes) -> StoredDocument:
        object_key = _join_key(self.prefix, f"{key}.pdf")
        params = {
            "Bucket": self.bucket,
            "Key": object_key,
            "Body": content,
            "ContentType": "application/pdf",
            "ContentDisposition": f'inline; filename="{key}.pdf"',
        }
        if self.acl:
            params["ACL"] = self.acl
        self._client.put_object(**params)
        logger.info("Archived invoice PDF", extra={"storage_bucket": self.bucket, "storage_key": object_key})
        return StoredDocument(url=self._public_url(object_key), public_id=object_key)


class LocalInvoiceStorage:
    """Write invoices to a directory; used in development."""

    def __init__(self, *, root: str, prefix: str = "", public_base_url: Optional[str] = None) -> None:
        self.root = Path(root)
        self.prefix = prefix
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def save(self, key: str, content: bytes) -> StoredDocument:
        object_key = _join_key(self.prefix, f"{key}.pdf")
        path = self.root / object_key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        url = f"{self.public_base_url}/{object_key}" if self.public_base_url else path.resolve().as_uri()
        return StoredDocument(url=url, public_id=object_key)


__all__ = ["InvoiceStorage", "LocalInvoiceStorage", "S3InvoiceStorage"]
