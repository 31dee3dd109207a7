"""
Attachment upload broker.

The client queues files (as base64) against temporary ids and sends them with
a sync. Each item is written to the blob store independently; a failed item
maps to None so the client can keep its temp id and retry on the next sync.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Protocol

import sentry_sdk

from .exceptions import BlobStoreNotConfiguredError
from .models import Case, UploadItem

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def put(self, data: bytes, filename: str, mime_type: str) -> str:
        """Store the bytes and return a public URL."""
        ...


@dataclass
class UploadResult:
    links: dict[str, str | None]
    failed: int

    @property
    def succeeded(self) -> int:
        return len(self.links) - self.failed


def decode_payload(encoded: str) -> bytes:
    """
    Decode a base64 upload body.

    Accepts data URLs ("data:image/png;base64,....") as produced by FileReader.
    """
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    return base64.b64decode(encoded, validate=True)


def _text_or(value, default: str) -> str:
    return value if isinstance(value, str) and value else default


class BlobUploadBroker:
    def __init__(self, blob_store: BlobStore | None):
        self.blob_store = blob_store

    @property
    def is_configured(self) -> bool:
        return self.blob_store is not None

    async def upload(self, items: list[UploadItem]) -> UploadResult:
        """
        Upload a batch of files.

        Returns:
            UploadResult with a temp_id -> URL map (None for failed items)
            and the failure count.

        Raises:
            BlobStoreNotConfiguredError: If the batch is non-empty and no blob
                store is configured
        """
        if not items:
            return UploadResult(links={}, failed=0)
        if self.blob_store is None:
            raise BlobStoreNotConfiguredError(
                "File upload is not configured on this server"
            )

        links: dict[str, str | None] = {}
        failed = 0
        for item in items:
            filename = _text_or(item.file_name, f"upload_{item.temp_id}")
            mime_type = _text_or(item.mime_type, "application/octet-stream")
            try:
                if not isinstance(item.base64, str) or not item.base64:
                    raise ValueError("missing base64 body")
                data = decode_payload(item.base64)
                links[item.temp_id] = await self.blob_store.put(data, filename, mime_type)
            except (binascii.Error, ValueError) as e:
                failed += 1
                links[item.temp_id] = None
                logger.warning(f"Upload {item.temp_id} ({filename}) has an invalid body: {e}")
            except Exception as e:
                failed += 1
                links[item.temp_id] = None
                logger.error(f"Upload {item.temp_id} ({filename}) failed: {e}")
                sentry_sdk.capture_exception(e)

        if failed:
            logger.warning(f"{failed} of {len(items)} uploads failed")
        else:
            logger.info(f"Uploaded {len(items)} attachments")
        return UploadResult(links=links, failed=failed)


def reconcile_attachments(cases: list[Case], links: dict[str, str | None]) -> int:
    """
    Apply an upload result to pending attachment records.

    Attachments whose temp id has a URL get `url` set and the temp id cleared;
    failed ones keep their temp id for a later retry.

    Returns:
        Number of attachments updated
    """
    updated = 0
    for case in cases:
        for attachment in case.attachments:
            if not attachment.temp_id:
                continue
            url = links.get(attachment.temp_id)
            if url:
                attachment.mark_uploaded(url)
                updated += 1
    return updated
