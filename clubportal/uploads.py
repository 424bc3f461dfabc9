"""
Presigned upload URLs for blog images.

Issuing a URL never touches the entity store; callers persist the returned
public URL on the post themselves.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from clubportal.permissions import require_permission
from clubportal.results import ActionContext, action, fail, ok
from clubportal.schemas import ActionResult, UploadUrlData
from clubportal.types import Capability
from clubportal.validation import UploadRequest, validate

logger = logging.getLogger(__name__)

ONLY_IMAGES = "Only image files are allowed"
TOO_LARGE = "File size exceeds the 5MB limit"


def build_object_key(prefix: str, file_type: str) -> str:
    extension = file_type.split("/", 1)[1].split(";", 1)[0].split("+", 1)[0]
    return f"{prefix.rstrip('/')}/{uuid4()}.{extension or 'bin'}"


@action()
def generate_presigned_url(ctx: ActionContext, file_type: Any, file_size: Any) -> ActionResult:
    denied = require_permission(ctx.principal, Capability.MANAGE_BLOG_POSTS)
    if denied:
        return denied

    if not isinstance(file_type, str) or not file_type.startswith("image/"):
        return fail(ONLY_IMAGES)
    request = validate(UploadRequest, {"file_type": file_type, "file_size": file_size})
    if request.file_size > ctx.settings.upload_max_bytes:
        return fail(TOO_LARGE)

    key = build_object_key(ctx.settings.upload_key_prefix, request.file_type)
    upload_url = ctx.storage.presign_put(
        key,
        content_type=request.file_type,
        content_length=request.file_size,
        expires_in=ctx.settings.upload_url_expires_in,
    )
    public_url = f"{ctx.settings.s3_public_domain.rstrip('/')}/{key}"
    logger.info("Issued upload URL for %s", key)
    return ok(UploadUrlData(upload_url=upload_url, public_url=public_url))
