import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, BigInteger, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from medialib.db import Base

class MediaCategory(str, enum.Enum):
    PAGE = "page"
    BLOG = "blog"
    EVENT = "event"
    CAUSE = "cause"
    TEAM = "team"
    HERO = "hero"
    GALLERY = "gallery"
    UNCATEGORIZED = "uncategorized"

class MediaSource(str, enum.Enum):
    UPLOADED = "uploaded"
    EXTERNAL = "external"

class UsageType(str, enum.Enum):
    FEATURED = "featured"
    GALLERY = "gallery"
    INLINE = "inline"
    THUMBNAIL = "thumbnail"
    HERO = "hero"
    BACKGROUND = "background"

class ResizeMode(str, enum.Enum):
    FIT = "fit"          # scale within the box, keep aspect ratio
    STRETCH = "stretch"  # exact box, ignore aspect ratio
    CROP = "crop"        # cover the box, center crop

def _enum(enum_cls):
    return Enum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e])

def _new_id() -> str:
    return uuid.uuid4().hex

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class MediaAsset(Base):
    __tablename__ = "media_assets"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    source: Mapped[MediaSource] = mapped_column(_enum(MediaSource), nullable=False, default=MediaSource.UPLOADED)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    file_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    alt_text: Mapped[str | None] = mapped_column(String(200), nullable=True)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[MediaCategory] = mapped_column(_enum(MediaCategory), nullable=False, default=MediaCategory.UNCATEGORIZED, index=True)
    variants: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    uploaded_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    # attribution, external provenance only
    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    photographer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    photographer_username: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def tag_list(self) -> list[str]:
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]

class MediaUsage(Base):
    __tablename__ = "media_usages"
    __table_args__ = (UniqueConstraint("asset_id", "consumer_type", "consumer_id", name="uq_media_usage_consumer"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[str] = mapped_column(String(32), ForeignKey("media_assets.id", ondelete="RESTRICT"), nullable=False, index=True)
    consumer_type: Mapped[str] = mapped_column(String(50), nullable=False)
    consumer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    usage_type: Mapped[UsageType | None] = mapped_column(_enum(UsageType), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

class ImageSize(Base):
    __tablename__ = "image_sizes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[MediaCategory] = mapped_column(_enum(MediaCategory), nullable=False, index=True)
    mode: Mapped[ResizeMode] = mapped_column(_enum(ResizeMode), nullable=False, default=ResizeMode.CROP)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
