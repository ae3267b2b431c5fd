"""
Usage tracking: which content items reference which asset
"""
from typing import List

from fastapi import APIRouter, Depends

from medialib.api.deps import editor_permission, get_service
from medialib.schemas import AttachRequest, UsageRef
from medialib.services.media_service import MediaService

router = APIRouter(tags=["usages"])

@router.get("/media/{asset_id}/usages", response_model=List[UsageRef])
async def list_usages(asset_id: str, service: MediaService = Depends(get_service)):
    return await service.list_usages(asset_id)

@router.post("/media/{asset_id}/usages", response_model=UsageRef)
async def attach_usage(asset_id: str, body: AttachRequest, permitted: bool = Depends(editor_permission),
                       service: MediaService = Depends(get_service)):
    return await service.attach_usage(asset_id, body.consumer_type, body.consumer_id,
                                      permitted=permitted, usage_type=body.usage_type)

@router.delete("/media/{asset_id}/usages/{consumer_type}/{consumer_id}")
async def detach_usage(asset_id: str, consumer_type: str, consumer_id: str,
                       permitted: bool = Depends(editor_permission),
                       service: MediaService = Depends(get_service)):
    removed = await service.detach_usage(asset_id, consumer_type, consumer_id, permitted=permitted)
    return {"removed": removed}

@router.delete("/usages/{consumer_type}/{consumer_id}")
async def release_consumer(consumer_type: str, consumer_id: str, permitted: bool = Depends(editor_permission),
                           service: MediaService = Depends(get_service)):
    """Drop every usage of a content item that is being deleted."""
    released = await service.release_consumer(consumer_type, consumer_id, permitted=permitted)
    return {"released": released}
