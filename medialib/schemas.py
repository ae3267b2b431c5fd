from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from medialib.models import MediaCategory, MediaSource, ResizeMode, UsageType

class AssetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_path: str
    url: Optional[str] = None
    source: MediaSource
    width: int
    height: int
    file_size: int
    mime_type: str
    format: str
    file_hash: Optional[str] = None
    alt_text: Optional[str] = None
    title: Optional[str] = None
    caption: Optional[str] = None
    tags: Optional[str] = None
    category: MediaCategory
    variants: Dict[str, str] = {}
    created_at: datetime
    uploaded_by: Optional[str] = None
    external_id: Optional[str] = None
    photographer_name: Optional[str] = None
    photographer_username: Optional[str] = None

class AssetPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    alt_text: Optional[str] = Field(None, max_length=200)
    title: Optional[str] = Field(None, max_length=200)
    caption: Optional[str] = None
    tags: Optional[str] = Field(None, max_length=500)
    category: Optional[MediaCategory] = None

class AssetPage(BaseModel):
    items: List[AssetOut]
    total: int
    page: int
    page_size: int
    total_pages: int

class MediaStats(BaseModel):
    total_count: int
    total_bytes: int
    by_category: Dict[MediaCategory, int]

class UsageRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    consumer_type: str
    consumer_id: str
    usage_type: Optional[UsageType] = None
    created_at: Optional[datetime] = None

class AttachRequest(BaseModel):
    consumer_type: str = Field(min_length=1, max_length=50)
    consumer_id: str = Field(min_length=1, max_length=64)
    usage_type: Optional[UsageType] = None

class VariantOut(BaseModel):
    asset_id: str
    label: str
    url: str
    generated: bool
    fallback: bool = False

class SizeSpecIn(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    width: int = Field(gt=0, le=10000)
    height: int = Field(gt=0, le=10000)
    category: MediaCategory = MediaCategory.UNCATEGORIZED
    mode: ResizeMode = ResizeMode.CROP
    name: Optional[str] = None
    description: Optional[str] = None

class SizeSpecOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    name: str
    description: Optional[str] = None
    width: int
    height: int
    category: MediaCategory
    mode: ResizeMode
    is_active: bool

class ExternalPhotoUrls(BaseModel):
    raw: str = ""
    full: str = ""
    regular: str = ""
    small: str = ""
    thumb: str = ""

class ExternalPhoto(BaseModel):
    id: str
    description: Optional[str] = None
    alt_description: Optional[str] = None
    width: int = 0
    height: int = 0
    color: Optional[str] = None
    urls: ExternalPhotoUrls = ExternalPhotoUrls()
    photographer_name: str = ""
    photographer_username: str = ""

class ExternalSearchPage(BaseModel):
    total: int
    total_pages: int
    page: int
    per_page: int
    results: List[ExternalPhoto] = []

class ImportRequest(BaseModel):
    remote_id: str = Field(min_length=1, max_length=64)
    photo: Optional[ExternalPhoto] = None
    alt_text: Optional[str] = Field(None, max_length=200)
    tags: Optional[str] = Field(None, max_length=500)
    category: MediaCategory = MediaCategory.UNCATEGORIZED
