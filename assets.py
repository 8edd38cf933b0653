"""
Remote image hosting

AssetService is what the routes and the cascade coordinator depend on.
CloudinaryAssetService is the production implementation; credentials come
from Settings and are passed on every call instead of through
cloudinary.config().
"""
import io
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from config import Settings
from errors import DependencyFailure

logger = logging.getLogger(__name__)

VERSION_PREFIX = re.compile(r"^v\d+/")


@dataclass(frozen=True)
class StoredAsset:
    url: str
    storage_id: str

    def to_dict(self) -> dict:
        return {"url": self.url, "storage_id": self.storage_id}


def storage_id_from_url(url: str) -> str:
    """
    Recover the public id of a hosted image from its delivery URL.

    ".../upload/v1700000000/ecommerce/categories/abc.jpg" -> "ecommerce/categories/abc"

    URLs without an "/upload/" segment fall back to the last two path parts.
    """
    path = (urlparse(url).path or url).rstrip("/")
    if "/upload/" in path:
        tail = path.split("/upload/", 1)[1]
        tail = VERSION_PREFIX.sub("", tail)
    else:
        tail = "/".join(path.split("/")[-2:])
    return tail.rsplit(".", 1)[0] if "." in tail.rsplit("/", 1)[-1] else tail


class AssetService(ABC):
    @abstractmethod
    def store(self, data: bytes, folder: Optional[str] = None, filename: Optional[str] = None) -> StoredAsset:
        """Upload raw bytes and return where they live."""

    @abstractmethod
    def delete(self, storage_id: str) -> bool:
        """True if the asset was removed, False if it did not exist."""


class CloudinaryAssetService(AssetService):
    def __init__(self, settings: Settings):
        self._options = {
            "cloud_name": settings.cloudinary_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
            "secure": True,
        }

    def store(self, data: bytes, folder: Optional[str] = None, filename: Optional[str] = None) -> StoredAsset:
        stream = io.BytesIO(data)
        if filename:
            stream.name = filename
        try:
            result = cloudinary.uploader.upload(
                stream, folder=folder, resource_type="auto", **self._options
            )
        except (CloudinaryError, ValueError) as e:
            raise DependencyFailure(f"Image upload failed: {e}") from e
        logger.info("Uploaded %s", result["public_id"])
        return StoredAsset(url=result["secure_url"], storage_id=result["public_id"])

    def delete(self, storage_id: str) -> bool:
        try:
            result = cloudinary.uploader.destroy(storage_id, **self._options)
        except (CloudinaryError, ValueError) as e:
            # ValueError: missing credentials, raised before any request is made
            raise DependencyFailure(f"Image delete failed for {storage_id}: {e}") from e
        return result.get("result") == "ok"
