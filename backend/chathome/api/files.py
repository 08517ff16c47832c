"""Attachment upload and retrieval.

Uploaded files are stored in the caller's blob namespace; only keys inside that
namespace can be read back.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, UploadFile
from fastapi.responses import FileResponse, Response

from chathome.api.deps import get_blobs, get_current_user, get_store
from chathome.core.blobs import BlobStore, owned_by
from chathome.core.config import settings
from chathome.core.errors import NotFound, ValidationFailed
from chathome.core.security import Identity
from chathome.services.store import ConversationStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload")
async def upload_file(
    file: UploadFile,
    conversation_id: Optional[str] = None,
    identity: Identity = Depends(get_current_user),
    blobs: BlobStore = Depends(get_blobs),
    store: ConversationStore = Depends(get_store),
):
    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise ValidationFailed(f"File exceeds {settings.max_upload_bytes // (1024 * 1024)} MB limit")
    if conversation_id:
        store.get(identity.user_id, conversation_id)

    info = blobs.put(
        identity.user_id,
        file.filename or "file",
        content,
        file.content_type or "application/octet-stream",
        namespace=conversation_id,
    )
    logger.info(f"Uploaded {info.name} ({info.size} bytes) as {info.key}")
    return {"key": info.key, "name": info.name, "size": info.size, "type": info.content_type}


@router.get("/{key:path}")
async def get_file(
    key: str,
    request: Request,
    identity: Identity = Depends(get_current_user),
    blobs: BlobStore = Depends(get_blobs),
):
    info = blobs.info(key) if owned_by(key, identity.user_id) else None
    if info is None:
        raise NotFound("File not found")

    etag = f'"{info.etag}"'
    if request.headers.get("if-none-match") in (etag, info.etag):
        return Response(status_code=304, headers={"ETag": etag})

    return FileResponse(
        blobs.path_for(key),
        media_type=info.content_type,
        filename=info.name,
        content_disposition_type="inline",
        headers={"ETag": etag, "Cache-Control": "private, max-age=3600"},
    )
