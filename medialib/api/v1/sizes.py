"""
Named image sizes used for variants
"""
from typing import List, Optional

from fastapi import APIRouter, Depends

from medialib.api.deps import editor_permission, get_service
from medialib.errors import NotPermitted
from medialib.models import MediaCategory
from medialib.schemas import SizeSpecIn, SizeSpecOut
from medialib.services.media_service import MediaService

router = APIRouter(prefix="/sizes", tags=["sizes"])

@router.get("", response_model=List[SizeSpecOut])
async def list_sizes(category: Optional[MediaCategory] = None, include_inactive: bool = False,
                     service: MediaService = Depends(get_service)):
    return await service.sizes.list_sizes(category, active_only=not include_inactive)

@router.post("", response_model=SizeSpecOut, status_code=201)
async def create_size(body: SizeSpecIn, permitted: bool = Depends(editor_permission),
                      service: MediaService = Depends(get_service)):
    if not permitted:
        raise NotPermitted()
    return await service.sizes.create(body.label, body.width, body.height, category=body.category,
                                      mode=body.mode, name=body.name, description=body.description)

@router.delete("/{label}", response_model=SizeSpecOut)
async def deactivate_size(label: str, permitted: bool = Depends(editor_permission),
                          service: MediaService = Depends(get_service)):
    """Sizes are retired, never edited or removed."""
    if not permitted:
        raise NotPermitted()
    return await service.sizes.deactivate(label)
