from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from fastapi import UploadFile

from docdesk.core.exceptions import UploadError, ValidationAppError
from docdesk.services.blob_store import BlobStore, StoredBlob
from docdesk.services.envelope import Attachment

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str | None) -> str:
    raw = (filename or "attachment").strip()
    raw = raw.replace("\\", "/").split("/")[-1]
    raw = re.sub(r"[^A-Za-z0-9._ -]+", "_", raw).strip("._ ")
    return raw or "attachment"


@dataclass(frozen=True)
class UploadItem:
    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


async def read_upload_files(files: Iterable[UploadFile] | None) -> list[UploadItem]:
    items: list[UploadItem] = []
    for file in files or []:
        # Browsers submit an empty part when no file was chosen.
        if not file.filename:
            continue
        content = await file.read()
        items.append(UploadItem(filename=file.filename, content=content, content_type=file.content_type))
    return items


class AttachmentUploader:
    """Uploads one message's files as a single all-or-nothing batch."""

    def __init__(self, blob_store: BlobStore, *, base_folder: str = "support-tickets", max_files: int = 10, max_bytes: int = 10 * 1024 * 1024) -> None:
        self.blob_store = blob_store
        self.base_folder = base_folder.strip("/")
        self.max_files = max_files
        self.max_bytes = max_bytes

    def folder_for(self, scope: str | None) -> str:
        scope = (scope or "").strip("/")
        return f"{self.base_folder}/{scope}" if scope else self.base_folder

    def validate(self, files: Sequence[UploadItem]) -> None:
        if len(files) > self.max_files:
            raise ValidationAppError(
                f"You can attach up to {self.max_files} files",
                details={"max_files": self.max_files},
            )
        for item in files:
            if item.size == 0:
                raise ValidationAppError("Attachment is empty", details={"filename": item.filename})
            if item.size > self.max_bytes:
                raise ValidationAppError(
                    "Attachment is too large",
                    details={"filename": item.filename, "max_bytes": self.max_bytes},
                )

    async def _upload_one(self, item: UploadItem, folder: str) -> Attachment:
        filename = sanitize_filename(item.filename)
        stored: StoredBlob = await self.blob_store.upload(item.content, folder=folder, filename=filename)
        return Attachment(
            url=stored.url,
            public_id=stored.public_id,
            original_filename=item.filename,
            bytes=stored.bytes,
            resource_type=stored.resource_type,
            format=stored.format,
        )

    async def upload_batch(self, files: Sequence[UploadItem], scope: str | None = None) -> list[Attachment]:
        files = list(files)
        if not files:
            return []
        self.validate(files)

        folder = self.folder_for(scope)
        results = await asyncio.gather(
            *(self._upload_one(item, folder) for item in files),
            return_exceptions=True,
        )

        uploaded = [item for item in results if isinstance(item, Attachment)]
        failures = [(files[index], result) for index, result in enumerate(results) if isinstance(result, BaseException)]
        if not failures:
            logger.info("Uploaded %d attachment(s) to %s", len(uploaded), folder)
            return uploaded

        failed_item, error = failures[0]
        logger.error("Attachment upload failed for %s: %s", failed_item.filename, error)
        if uploaded:
            # Nobody else holds these records, so the batch cleans up after itself.
            await self.rollback(uploaded)
        raise UploadError(
            f"Failed to upload attachment {failed_item.filename}",
            filename=failed_item.filename,
            details={"failed": [item.filename for item, _ in failures]},
        ) from error

    async def rollback(self, attachments: Iterable[Attachment]) -> None:
        attachments = [item for item in attachments if item.public_id]
        if not attachments:
            return
        results = await asyncio.gather(
            *(self.blob_store.delete(item.public_id, resource_type=item.resource_type) for item in attachments),
            return_exceptions=True,
        )
        for item, result in zip(attachments, results):
            if isinstance(result, BaseException):
                logger.warning("Rollback delete failed for %s: %s", item.public_id, result)
            else:
                logger.info("Rolled back attachment %s", item.public_id)
