"""Media storage on Cloudinary.

Credentials are handed to every SDK call from the settings this object was
built with, so nothing is configured globally at import time.
"""
import logging
import posixpath
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import cloudinary.uploader
from fastapi import UploadFile

from config import Settings

logger = logging.getLogger(__name__)

HOSTED_DOMAIN = "cloudinary.com"
RESOURCE_TYPES = ("image", "video", "raw")


def is_hosted(url: Optional[str]) -> bool:
    """True for assets living on the storage host, the only ones we ever delete."""
    return bool(url) and HOSTED_DOMAIN in url


def resource_type_from_url(url: str) -> str:
    """`.../raw/upload/...` -> `raw`; anything unrecognised is treated as an image."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if "upload" in segments:
        index = segments.index("upload")
        if index > 0 and segments[index - 1] in RESOURCE_TYPES:
            return segments[index - 1]
    return "image"


def public_id_from_url(url: str) -> str:
    """`.../image/upload/v17/portfolio/avatar.png` -> `portfolio/avatar`.

    Raw files keep their extension, it is part of their public id.
    """
    path = urlparse(url).path
    if "/upload/" in path:
        path = path.split("/upload/", 1)[1]
    segments = [s for s in path.split("/") if s]
    if len(segments) > 1 and segments[0][:1] == "v" and segments[0][1:].isdigit():
        segments = segments[1:]
    public_id = "/".join(segments)
    if resource_type_from_url(url) == "raw":
        return public_id
    return posixpath.splitext(public_id)[0]


class MediaStorage:
    def __init__(self, settings: Settings):
        self._folder = settings.cloudinary_folder
        self._credentials: Dict[str, Any] = {
            "cloud_name": settings.cloudinary_cloud_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
        }

    def upload(self, upload: UploadFile) -> str:
        result = cloudinary.uploader.upload(
            upload.file,
            resource_type="auto",
            folder=self._folder,
            **self._credentials,
        )
        url = result.get("secure_url") or result.get("url")
        if not url:
            raise RuntimeError(f"upload of {upload.filename!r} returned no url")
        logger.info("Uploaded %s -> %s", upload.filename, url)
        return url

    def delete(self, url: str) -> None:
        public_id = public_id_from_url(url)
        resource_type = resource_type_from_url(url)
        cloudinary.uploader.destroy(public_id, resource_type=resource_type, **self._credentials)
        logger.info("Deleted %s media %s", resource_type, public_id)

    def release(self, url: Optional[str]) -> bool:
        """Delete `url` if it is hosted with us; report whether a delete was issued."""
        if not is_hosted(url):
            return False
        self.delete(url)
        return True
