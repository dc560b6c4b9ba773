# jurisly/storage/local.py
import asyncio
from pathlib import Path

from ..local_storage import file_executor
from ..logging_config import get_logger
from .base import AvatarStorage

logger = get_logger(__name__)


class LocalAvatarStorage(AvatarStorage):
    """Objects written under `root`, served by the app at `url_prefix`"""

    def __init__(self, root: str | Path, url_prefix: str = "/media"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        (self.root / "avatars").mkdir(parents=True, exist_ok=True)

    def public_url(self, path: str) -> str:
        return f"{self.url_prefix}/{path}"

    async def upload(self, path: str, content: bytes, content_type: str, access_token: str) -> str:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)

        def save_to_disk():
            with open(target, "wb") as buffer:
                buffer.write(content)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(file_executor, save_to_disk)
        logger.debug(f"Avatar saved to {target}")
        return self.public_url(path)
