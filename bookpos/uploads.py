import mimetypes
import os

from .errors import NetworkFailure, ValidationFailure
from .logs import json_log
from .remote import RemoteClient

MAX_IMAGE_BYTES = 10 * 1024 * 1024


class ImageUploader:
    """
    Product image upload through a presigned object-storage URL.

    The shop server hands out a one-time PUT URL; the bytes go straight to
    storage and only the resulting public URL is stored on the product.
    """

    def __init__(self, remote: RemoteClient, max_bytes: int = MAX_IMAGE_BYTES):
        self.remote = remote
        self.max_bytes = int(max_bytes)

    def upload_image(self, filename: str, content_type: str, data: bytes) -> dict:
        filename = os.path.basename((filename or "").strip())
        if not filename:
            raise ValidationFailure("filename is required")
        if not data:
            raise ValidationFailure("empty upload")
        if len(data) > self.max_bytes:
            raise ValidationFailure(f"file too large (max {self.max_bytes} bytes)")
        content_type = (content_type or "").strip() or mimetypes.guess_type(filename)[0] or "application/octet-stream"

        grant = self.remote.request_upload_url(filename, content_type)
        upload_url = grant.get("uploadUrl") or ""
        if not upload_url:
            raise NetworkFailure("upload url missing from server response")
        self.remote.put_bytes(upload_url, data, content_type)
        out = {
            "upload_url": upload_url,
            "object_key": grant.get("objectKey") or "",
            "public_url": grant.get("publicUrl") or "",
        }
        json_log("info", "upload.done", object_key=out["object_key"], bytes=len(data), content_type=content_type)
        return out
