# jurisly/storage/hosted.py
from typing import Optional

import httpx

from ..error_handlers import ErrorCode, ExternalServiceException
from ..monitoring import track_external_api_call
from .base import AvatarStorage


class HostedAvatarStorage(AvatarStorage):
    """Hosted object storage REST API (bucket/object paths, upsert uploads)"""

    def __init__(self, base_url: str, anon_key: str, bucket: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.bucket = bucket
        self.client = client or httpx.AsyncClient(timeout=30.0)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, path: str, content: bytes, content_type: str, access_token: str) -> str:
        try:
            with track_external_api_call("storage", "upload", path=path, size_bytes=len(content)):
                response = await self.client.post(
                    f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                    headers={
                        "apikey": self.anon_key,
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": content_type,
                        "x-upsert": "true",
                    },
                    content=content,
                )
        except httpx.HTTPError as e:
            raise ExternalServiceException("storage", str(e), ErrorCode.STORAGE_SERVICE_ERROR)

        if response.is_error:
            raise ExternalServiceException("storage", response.text or f"HTTP {response.status_code}",
                                           ErrorCode.STORAGE_SERVICE_ERROR)
        return self.public_url(path)

    async def aclose(self) -> None:
        await self.client.aclose()
