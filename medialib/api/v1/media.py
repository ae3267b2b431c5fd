"""
Media library endpoints: browse, upload, edit, delete, variants
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from medialib.api.deps import asset_out, editor_permission, get_service, read_upload
from medialib.models import MediaCategory, MediaSource
from medialib.schemas import AssetOut, AssetPage, AssetPatch, MediaStats, VariantOut
from medialib.services.media_service import MediaService

router = APIRouter(prefix="/media", tags=["media"])

@router.get("", response_model=AssetPage)
async def list_media(
    category: Optional[MediaCategory] = None,
    source: Optional[MediaSource] = None,
    search: Optional[str] = None,
    tags: Optional[str] = None,
    page: int = 1,
    page_size: int = 24,
    service: MediaService = Depends(get_service),
):
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    result = await service.query(category=category, source=source, search=search, tags=tag_list,
                                 page=page, page_size=page_size)
    return AssetPage(
        items=[asset_out(service, a) for a in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )

@router.get("/stats", response_model=MediaStats)
async def media_stats(service: MediaService = Depends(get_service)):
    return await service.catalog.stats()

@router.post("/upload", response_model=AssetOut, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    alt_text: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    caption: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    category: MediaCategory = Form(MediaCategory.UNCATEGORIZED),
    uploaded_by: Optional[str] = Form(None),
    permitted: bool = Depends(editor_permission),
    service: MediaService = Depends(get_service),
):
    """Upload an image. The declared content type is ignored; the bytes decide."""
    raw = await read_upload(file, service.settings.MAX_UPLOAD_BYTES)
    asset = await service.upload_image(
        raw, file.filename or "upload", permitted=permitted, alt_text=alt_text, title=title,
        caption=caption, tags=tags, category=category, uploaded_by=uploaded_by,
    )
    return asset_out(service, asset)

@router.post("/duplicates", response_model=List[AssetOut])
async def find_duplicates(file: UploadFile = File(...), service: MediaService = Depends(get_service)):
    """Assets that already hold exactly this file, checked before uploading it again."""
    raw = await read_upload(file, service.settings.MAX_UPLOAD_BYTES)
    return [asset_out(service, a) for a in await service.find_duplicates(raw)]

@router.get("/{asset_id}", response_model=AssetOut)
async def get_media(asset_id: str, service: MediaService = Depends(get_service)):
    return asset_out(service, await service.get_asset(asset_id))

@router.patch("/{asset_id}", response_model=AssetOut)
async def update_media(asset_id: str, patch: AssetPatch, permitted: bool = Depends(editor_permission),
                       service: MediaService = Depends(get_service)):
    asset = await service.update_metadata(asset_id, patch.model_dump(exclude_unset=True), permitted=permitted)
    return asset_out(service, asset)

@router.delete("/{asset_id}", status_code=204)
async def delete_media(asset_id: str, permitted: bool = Depends(editor_permission),
                       service: MediaService = Depends(get_service)):
    await service.delete_asset(asset_id, permitted=permitted)

@router.get("/{asset_id}/variants/{label}", response_model=VariantOut)
async def variant_url(asset_id: str, label: str, service: MediaService = Depends(get_service)):
    return await service.resolve_variant_url(asset_id, label)

@router.post("/{asset_id}/variants/regenerate", response_model=AssetOut)
async def regenerate_variants(asset_id: str, permitted: bool = Depends(editor_permission),
                              service: MediaService = Depends(get_service)):
    asset = await service.regenerate_variants(asset_id, permitted=permitted)
    return asset_out(service, asset)
