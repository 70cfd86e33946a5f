"""
Media Storage Providers

The blob-storage collaborator. A provider takes a local temporary file, stores
it, and returns where it ended up. Providers own the temporary file once
`upload` is called: it is removed whether the upload succeeds or not.
"""

import asyncio
import hashlib
import logging
import os
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import aiohttp

from core.exceptions import StorageError

logger = logging.getLogger(__name__)


@dataclass
class StoredMedia:
    """Descriptor returned by a storage provider"""

    url: str
    public_id: str
    duration: Optional[float] = None

    @property
    def duration_seconds(self) -> int:
        return int(round(self.duration or 0))


def remove_local_file(path: Optional[str]) -> None:
    """Best-effort removal of a temporary upload"""
    if not path:
        return
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary file {path}: {e}")


def cleanup_temp_files(*paths: Optional[str]) -> None:
    for path in paths:
        remove_local_file(path)


class MediaStorage(ABC):
    """Abstract base class for all media storage backends"""

    @abstractmethod
    async def upload(self, local_path: str) -> StoredMedia:
        """Store a local file. Raises StorageError; always removes the file."""
        pass

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Delete a stored object by URL. Never raises."""
        pass

    @property
    @abstractmethod
    def source_name(self) -> str:
        pass


class CloudinaryMediaStorage(MediaStorage):
    """Signed uploads against the Cloudinary REST API"""

    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_seconds: int = 300,
    ):
        self.cloud_name = cloud_name or os.getenv("CLOUDINARY_CLOUD_NAME")
        self.api_key = api_key or os.getenv("CLOUDINARY_API_KEY")
        self.api_secret = api_secret or os.getenv("CLOUDINARY_API_SECRET")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @property
    def source_name(self) -> str:
        return "cloudinary"

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def sign(self, params: Dict[str, str]) -> str:
        """SHA-1 over the alphabetically sorted params followed by the secret"""
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed_form(self, params: Dict[str, str]) -> Dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {**params, "api_key": self.api_key, "signature": self.sign(params)}

    @staticmethod
    def parse_url(url: str) -> Optional[Dict[str, str]]:
        """
        Recover resource type and public id from a delivery URL such as
        https://res.cloudinary.com/<cloud>/video/upload/v1712/abc123.mp4
        """
        parts = urlparse(url).path.strip("/").split("/")
        if "upload" not in parts:
            return None
        upload_index = parts.index("upload")
        if upload_index < 1:
            return None
        remainder = parts[upload_index + 1 :]
        if remainder and remainder[0].startswith("v") and remainder[0][1:].isdigit():
            remainder = remainder[1:]
        if not remainder:
            return None
        public_id = "/".join(remainder).rsplit(".", 1)[0]
        return {"resource_type": parts[upload_index - 1], "public_id": public_id}

    async def upload(self, local_path: str) -> StoredMedia:
        if not local_path:
            raise StorageError("no file supplied")
        try:
            if not self.configured:
                raise StorageError("Cloudinary credentials are not configured")

            form = aiohttp.FormData()
            for key, value in self._signed_form({}).items():
                form.add_field(key, value)

            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                with open(local_path, "rb") as handle:
                    form.add_field(
                        "file", handle, filename=os.path.basename(local_path)
                    )
                    async with session.post(
                        f"{self.API_BASE}/{self.cloud_name}/auto/upload", data=form
                    ) as response:
                        payload = await response.json(content_type=None)
                        if response.status != 200:
                            message = (payload or {}).get("error", {}).get(
                                "message", f"HTTP {response.status}"
                            )
                            raise StorageError(message)

            stored = StoredMedia(
                url=payload.get("secure_url") or payload["url"],
                public_id=payload["public_id"],
                duration=payload.get("duration"),
            )
            logger.info(f"Uploaded {os.path.basename(local_path)} to {self.source_name}")
            return stored

        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, KeyError, ValueError) as e:
            logger.error(f"Upload of {local_path} failed: {e}")
            raise StorageError(str(e))
        finally:
            remove_local_file(local_path)

    async def delete(self, url: str) -> bool:
        target = self.parse_url(url) if url else None
        if not target or not self.configured:
            return False

        form = self._signed_form({"public_id": target["public_id"]})
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    f"{self.API_BASE}/{self.cloud_name}/{target['resource_type']}/destroy",
                    data=form,
                ) as response:
                    payload = await response.json(content_type=None)
                    return response.status == 200 and payload.get("result") == "ok"
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error deleting {url} from {self.source_name}: {e}")
            return False


class LocalMediaStorage(MediaStorage):
    """Keeps uploads in a directory on disk; for development and tests"""

    def __init__(self, media_root: Optional[str] = None, base_url: Optional[str] = None):
        self.media_root = Path(media_root or os.getenv("MEDIA_ROOT", "./media"))
        self.base_url = (base_url or os.getenv("MEDIA_BASE_URL", "/media")).rstrip("/")

    @property
    def source_name(self) -> str:
        return "local"

    async def upload(self, local_path: str) -> StoredMedia:
        if not local_path:
            raise StorageError("no file supplied")
        try:
            self.media_root.mkdir(parents=True, exist_ok=True)
            with open(local_path, "rb") as handle:
                digest = hashlib.sha256(handle.read()).hexdigest()[:24]
            suffix = Path(local_path).suffix
            target = self.media_root / f"{digest}{suffix}"
            await asyncio.to_thread(shutil.copyfile, local_path, target)
            return StoredMedia(url=f"{self.base_url}/{target.name}", public_id=digest)
        except OSError as e:
            raise StorageError(str(e))
        finally:
            remove_local_file(local_path)

    async def delete(self, url: str) -> bool:
        if not url or not url.startswith(self.base_url + "/"):
            return False
        target = self.media_root / url[len(self.base_url) + 1 :]
        try:
            target.unlink()
            return True
        except OSError as e:
            logger.warning(f"Could not delete {target}: {e}")
            return False


def create_media_storage() -> MediaStorage:
    """Cloudinary when credentials are configured, local disk otherwise"""
    cloudinary = CloudinaryMediaStorage()
    if cloudinary.configured:
        return cloudinary
    logger.warning("Cloudinary credentials missing, storing media on local disk")
    return LocalMediaStorage()
