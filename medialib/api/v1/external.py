"""
External photo source: search and import
"""
from fastapi import APIRouter, Depends, Query

from medialib.api.deps import asset_out, editor_permission, get_service
from medialib.schemas import AssetOut, ExternalSearchPage, ImportRequest
from medialib.services.media_service import MediaService

router = APIRouter(prefix="/external", tags=["external"])

@router.get("/search", response_model=ExternalSearchPage)
async def search_photos(q: str = Query(..., min_length=1), page: int = Query(1, ge=1),
                        per_page: int = Query(30, ge=1, le=30), service: MediaService = Depends(get_service)):
    return await service.search_external(q, page, per_page)

@router.post("/import", response_model=AssetOut, status_code=201)
async def import_photo(body: ImportRequest, permitted: bool = Depends(editor_permission),
                       service: MediaService = Depends(get_service)):
    asset = await service.import_external(
        body.remote_id, permitted=permitted, photo=body.photo, alt_text=body.alt_text,
        tags=body.tags, category=body.category,
    )
    return asset_out(service, asset)
