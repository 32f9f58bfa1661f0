from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import cloudinary.uploader

from docdesk.core.config import CloudinaryConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    url: str
    public_id: str
    bytes: int
    resource_type: str
    format: str | None = None


class BlobStore(Protocol):
    async def upload(self, content: bytes, *, folder: str, filename: str) -> StoredBlob: ...

    async def delete(self, public_id: str, *, resource_type: str = "image") -> None: ...


class CloudinaryBlobStore:
    """Cloudinary-backed blob store.

    The SDK is synchronous, so calls run in a worker thread. Credentials are
    passed per call rather than through the global ``cloudinary.config``.
    """

    def __init__(self, config: CloudinaryConfig) -> None:
        self.config = config

    def _credentials(self) -> dict[str, Any]:
        return {
            "cloud_name": self.config.cloud_name,
            "api_key": self.config.api_key,
            "api_secret": self.config.api_secret,
        }

    async def upload(self, content: bytes, *, folder: str, filename: str) -> StoredBlob:
        if not self.config.configured:
            raise RuntimeError("Cloudinary is not configured")

        result = await asyncio.to_thread(
            cloudinary.uploader.upload,
            content,
            folder=folder,
            resource_type="auto",
            use_filename=True,
            unique_filename=True,
            filename_override=filename,
            **self._credentials(),
        )
        logger.info("Uploaded %s to %s", filename, result.get("public_id"))
        return StoredBlob(
            url=str(result.get("secure_url") or result.get("url") or ""),
            public_id=str(result["public_id"]),
            bytes=int(result.get("bytes") or len(content)),
            resource_type=str(result.get("resource_type") or "raw"),
            format=result.get("format"),
        )

    async def delete(self, public_id: str, *, resource_type: str = "image") -> None:
        result = await asyncio.to_thread(
            cloudinary.uploader.destroy,
            public_id,
            resource_type=resource_type,
            invalidate=True,
            **self._credentials(),
        )
        outcome = (result or {}).get("result")
        if outcome not in {"ok", "not found"}:
            raise RuntimeError(f"Cloudinary destroy returned {outcome!r} for {public_id}")
        logger.info("Deleted blob %s (%s)", public_id, outcome)
