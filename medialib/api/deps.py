"""Shared request dependencies for the v1 routers."""
from typing import Optional

from fastapi import Header, Request, UploadFile

from medialib.errors import FileTooLarge
from medialib.models import MediaAsset
from medialib.schemas import AssetOut
from medialib.services.media_service import MediaService

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_service(request: Request) -> MediaService:
    return request.app.state.media


def editor_permission(x_media_editor: Optional[str] = Header(None)) -> bool:
    # set by the upstream auth layer; anything but an explicit true is read-only
    return (x_media_editor or "").strip().lower() in ("1", "true", "yes")


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, giving up as soon as it passes ``max_bytes``."""
    buffer = bytearray()
    while chunk := await file.read(UPLOAD_CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise FileTooLarge(max_bytes)
    return bytes(buffer)


def asset_out(service: MediaService, asset: MediaAsset) -> AssetOut:
    out = AssetOut.model_validate(asset)
    out.url = service.original_url(asset)
    return out
