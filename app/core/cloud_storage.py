"""
Resume file storage — Cloudinary unsigned uploads.

Without a configured cloud (CLOUDINARY_CLOUD_NAME empty or "demo-cloud") the
uploader runs in demo mode: nothing leaves the process and a synthetic
https://demo-storage.com/{folder}/{filename} URL is returned.

A configured upload is one multipart POST with an explicit timeout. No retry:
any non-2xx answer or network error comes back as UploadResult(success=False).
"""
import logging
import time
from typing import Optional

import requests
from fastapi.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.models.schemas import UploadResult

logger = logging.getLogger(__name__)
settings = get_settings()

DEMO_CLOUD = "demo-cloud"
DEMO_BASE_URL = "https://demo-storage.com"
UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud}/auto/upload"


class CloudStorageUploader:

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        upload_preset: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.cloud_name = settings.CLOUDINARY_CLOUD_NAME if cloud_name is None else cloud_name
        self.upload_preset = upload_preset or settings.CLOUDINARY_UPLOAD_PRESET
        self.timeout = timeout or settings.UPLOAD_TIMEOUT_SECONDS

    @property
    def demo_mode(self) -> bool:
        return not self.cloud_name or self.cloud_name == DEMO_CLOUD

    async def upload(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        folder: str = "hr360",
    ) -> UploadResult:
        if self.demo_mode:
            logger.debug("cloud_storage: demo mode, simulating upload of %s", filename)
            return UploadResult(
                success=True,
                url=f"{DEMO_BASE_URL}/{folder}/{filename}",
                public_id=f"demo_{int(time.time() * 1000)}_{filename}",
            )
        return await run_in_threadpool(self._upload_sync, filename, content, content_type, folder)

    def _upload_sync(self, filename: str, content: bytes, content_type: str, folder: str) -> UploadResult:
        try:
            response = requests.post(
                UPLOAD_URL.format(cloud=self.cloud_name),
                data={"upload_preset": self.upload_preset, "folder": folder},
                files={"file": (filename, content, content_type)},
                timeout=self.timeout,
            )
            if not response.ok:
                return UploadResult(
                    success=False,
                    error=f"Upload failed: {response.status_code} {response.reason}",
                )
            data = response.json()
            logger.info("cloud_storage: uploaded %s → %s", filename, data.get("secure_url"))
            return UploadResult(
                success=True,
                url=data.get("secure_url"),
                public_id=data.get("public_id"),
            )
        except (requests.RequestException, ValueError) as e:
            logger.error("cloud_storage: upload of %s failed: %s", filename, e)
            return UploadResult(success=False, error=str(e))
