import base64
import binascii
import json
import logging
import os
import secrets
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from fastapi import Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.core.errors import StorageError, UploadError, ValidationError
from shared.storage.base import StorageProvider

logger = logging.getLogger(__name__)

ImagePayload = Tuple[bytes, Optional[str], Optional[str]]
M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/jpg", "image/webp"}

EXTENSION_BY_TYPE = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def generate_filename(original_name: Optional[str], content_type: str) -> str:
    """`<epoch millis>-<9 random digits><ext>`, extension taken from the original name when present."""
    ext = os.path.splitext(original_name or "")[1].lower() or EXTENSION_BY_TYPE.get(content_type, "")
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9):09d}{ext}"


def validate_image(content_type: Optional[str], size: int, max_bytes: int):
    if not content_type or content_type.lower() not in ALLOWED_IMAGE_TYPES:
        raise UploadError(
            f"Unsupported file type '{content_type}'. Allowed: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}",
            field="image")
    if size == 0:
        raise UploadError("Uploaded file is empty", field="image")
    if size > max_bytes:
        raise UploadError(f"File too large. Maximum size is {max_bytes} bytes", field="image")


def decode_base64_image(data: str, content_type: Optional[str]) -> Tuple[bytes, Optional[str]]:
    """Accepts raw base64 or a `data:<mime>;base64,<payload>` URL."""
    if data.startswith("data:") and "," in data:
        header, data = data.split(",", 1)
        content_type = content_type or header[5:].split(";", 1)[0]
    try:
        return base64.b64decode(data, validate=True), content_type
    except (binascii.Error, ValueError):
        raise UploadError("Image is not valid base64 data", field="image")


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    # read one byte past the cap so oversize files are detected without buffering them whole
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadError(f"File too large. Maximum size is {max_bytes} bytes", field="image")
    return data


def store_image(
    storage: StorageProvider,
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    prefix: str,
    max_bytes: int,
) -> Tuple[str, str]:
    """Validate and upload an image. Returns (key, public_url)."""
    validate_image(content_type, len(data), max_bytes)
    key = f"{prefix.strip('/')}/{generate_filename(filename, content_type.lower())}"
    return key, storage.upload(key, data, content_type)


def _discard(storage: StorageProvider, key: str):
    try:
        storage.delete(key)
    except (OSError, StorageError) as e:
        logger.warning("Could not remove orphaned upload %s: %s", key, e)


def persist_with_image(
    storage: StorageProvider,
    image: Optional[ImagePayload],
    prefix: str,
    max_bytes: int,
    persist: Callable[[Optional[str]], T],
) -> T:
    """
    Upload `image` once, then call `persist(image_url)`. When `persist`
    fails the uploaded object is removed again, so a rejected or rolled
    back write leaves nothing behind in storage.
    """
    if image is None:
        return persist(None)

    key, url = store_image(storage, *image, prefix=prefix, max_bytes=max_bytes)
    try:
        return persist(url)
    except Exception:
        _discard(storage, key)
        raise


async def read_image_payload(request: Request, max_bytes: int) -> ImagePayload:
    """
    Accept an image either as multipart field `image` or as JSON
    `{image: <base64 or data URL>, filename, contentType}`.
    Returns (data, filename, content_type).
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        file = form.get("image")
        if file is None or isinstance(file, str):
            raise UploadError("Multipart field 'image' with a file is required", field="image")
        data = await read_upload(file, max_bytes)
        return data, file.filename, file.content_type

    try:
        body = await request.json()
    except ValueError:
        raise UploadError("Request body must be JSON or multipart/form-data", field="image")
    if not isinstance(body, dict) or not body.get("image"):
        raise UploadError("Field 'image' is required", field="image")

    # base64 inflates by 4/3; reject clearly oversize payloads before decoding
    if len(body["image"]) > (max_bytes * 4) // 3 + 1024:
        raise UploadError(f"File too large. Maximum size is {max_bytes} bytes", field="image")
    data, mime = decode_base64_image(body["image"], body.get("contentType"))
    return data, body.get("filename"), mime


def _form_value(value: str):
    # list and object fields arrive JSON encoded in forms
    if value[:1] in ("[", "{"):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


async def read_model_payload(
    request: Request, model: Type[M], max_bytes: int
) -> Tuple[M, Optional[ImagePayload]]:
    """
    Parse a create/update body sent as JSON or as form fields, with an
    optional `image` file when the form is multipart. Repeated form
    fields become lists. Returns (payload, image), image being None when
    no file was sent.
    """
    image = None
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        body = {}
        for key in form.keys():
            if key == "image":
                continue
            values = [_form_value(v) if isinstance(v, str) else v for v in form.getlist(key)]
            body[key] = values if len(values) > 1 else values[0]
        file = form.get("image")
        if file is not None and not isinstance(file, str) and file.filename:
            image = (await read_upload(file, max_bytes), file.filename, file.content_type)
    else:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Request body must be JSON or multipart/form-data")

    try:
        return model.model_validate(body), image
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
