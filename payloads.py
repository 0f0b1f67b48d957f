"""
Multipart payloads

The "with images" endpoints take one form field holding the business payload
as JSON text plus file parts. This module turns the text into a model and
merges uploaded image URLs into it.
"""

import json
import os
from typing import List, Optional, Type, TypeVar

import structlog
from fastapi import HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.datastructures import Headers

from config import get_settings
from schemas import Blog, Product, Vendor

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def parse_payload(raw: Optional[str], model: Type[M], label: str) -> M:
    """
    Three separate failures: nothing sent, text that is not valid JSON for
    `model`, and JSON that carries no payload at all (null or {}).
    """
    if raw is None or not raw.strip():
        raise bad_request(f"{label.capitalize()} payload is required.")

    try:
        data = json.loads(raw)
    except ValueError:
        raise bad_request(f"Invalid {label} JSON.")

    if data is None or data == {}:
        raise bad_request(f"{label.capitalize()} payload is invalid.")
    if not isinstance(data, dict):
        raise bad_request(f"Invalid {label} JSON.")

    try:
        return model.model_validate(data)
    except ValidationError:
        raise bad_request(f"Invalid {label} JSON.")


def file_length(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, os.SEEK_END)
    length = upload.file.tell()
    upload.file.seek(0)
    return length


def upload_image(storage, upload: UploadFile) -> str:
    upload.file.seek(0)
    return storage.upload(upload.file, upload.filename or "upload", upload.content_type)


def apply_blog_images(
    blog: Blog, files: List[UploadFile], storage, baseline: Optional[Blog] = None
) -> Blog:
    """
    File 0 becomes the cover image, the rest are appended to contentImages.
    The position is the raw submission index: an empty part is skipped but
    still uses up its slot.
    """
    if baseline is not None:
        blog.image_url = baseline.image_url
        blog.content_images = list(baseline.content_images or [])

    for i, upload in enumerate(files or []):
        if file_length(upload) <= 0:
            continue

        url = upload_image(storage, upload)
        if i == 0:
            blog.image_url = url
        else:
            blog.content_images.append(url)
    return blog


def apply_vendor_banner(
    vendor: Vendor, banner: Optional[UploadFile], storage, existing: Optional[Vendor] = None
) -> Vendor:
    if banner is not None and file_length(banner) > 0:
        vendor.banner_url = upload_image(storage, banner)
    elif existing is not None:
        vendor.banner_url = existing.banner_url
    return vendor


def append_product_images(product: Product, files: List[UploadFile], storage) -> Product:
    for upload in files or []:
        if file_length(upload) <= 0:
            continue
        product.image_urls.append(upload_image(storage, upload))
    return product


def too_large(limit: int) -> JSONResponse:
    return JSONResponse(status_code=413, content={"detail": f"Request too large. Max size: {limit} bytes"})


class UploadSizeLimitMiddleware:
    """
    Caps request bodies at `max_upload_bytes` before the application reads
    them. A declared Content-Length over the cap is refused up front; a
    streamed body is cut off once it passes the cap.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = get_settings().max_upload_bytes
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limit:
            logger.warning("request_too_large", path=scope["path"], content_length=int(length))
            await too_large(limit)(scope, receive, send)
            return

        received = 0
        exceeded = False

        async def limited_receive():
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    exceeded = True
                    # The app sees a disconnect and stops reading
                    return {"type": "http.disconnect"}
            return message

        async def guarded_send(message):
            if not exceeded:
                await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception:
            if not exceeded:
                raise

        if exceeded:
            logger.warning("request_too_large", path=scope["path"], received=received)
            await too_large(limit)(scope, receive, send)
