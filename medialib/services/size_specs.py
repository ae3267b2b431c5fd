import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.errors import DuplicateSizeSpec, SizeSpecNotFound
from medialib.models import ImageSize, MediaCategory, ResizeMode
from medialib.utils.paths import slugify

logger = logging.getLogger(__name__)

# (name, description, width, height, category, mode)
DEFAULT_SIZES = [
    ("Page Header", "Page breadcrumb backgrounds", 1800, 540, MediaCategory.PAGE, ResizeMode.CROP),
    ("About Portrait", "Vertical about/story images", 587, 695, MediaCategory.PAGE, ResizeMode.CROP),
    ("Cause Card", "Cause/program cards", 450, 300, MediaCategory.CAUSE, ResizeMode.CROP),
    ("Social Share", "Open Graph/social media images", 1200, 630, MediaCategory.PAGE, ResizeMode.CROP),
    ("Event List", "Event cards in list view", 630, 450, MediaCategory.EVENT, ResizeMode.CROP),
    ("Event Featured", "Event detail page featured image", 1320, 743, MediaCategory.EVENT, ResizeMode.CROP),
    ("Blog Featured", "Blog post featured images", 425, 500, MediaCategory.BLOG, ResizeMode.CROP),
    ("Blog Mini", "Sidebar/related post thumbnails", 100, 84, MediaCategory.BLOG, ResizeMode.CROP),
    ("Team Full", "Full team member photo", 400, 500, MediaCategory.TEAM, ResizeMode.CROP),
    ("Team Headshot", "Avatar/headshot", 90, 90, MediaCategory.TEAM, ResizeMode.CROP),
    ("Hero Background", "Background sections and hero images", 1800, 855, MediaCategory.HERO, ResizeMode.FIT),
    ("Hero Main", "Main hero image", 1920, 1080, MediaCategory.HERO, ResizeMode.FIT),
    ("Gallery Large", "Gallery large images", 1200, 800, MediaCategory.GALLERY, ResizeMode.FIT),
    ("Gallery Thumbnail", "Gallery thumbnails", 300, 300, MediaCategory.GALLERY, ResizeMode.CROP),
]

# used for categories without sizes of their own
FALLBACK_SIZES: List[Tuple[str, int, int]] = [
    ("thumbnail", 150, 150),
    ("small", 300, 300),
    ("medium", 600, 600),
]


class SizeSpecRegistry:
    """Named size templates. A size is never edited once created; deactivate it and add a new label."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def seed_defaults(self) -> int:
        async with self._sessions() as session, session.begin():
            if await session.scalar(select(func.count()).select_from(ImageSize)):
                return 0
            for name, description, width, height, category, mode in DEFAULT_SIZES:
                session.add(ImageSize(label=slugify(name), name=name, description=description,
                                      width=width, height=height, category=category, mode=mode, is_active=True))
        logger.info("Seeded %d default image sizes", len(DEFAULT_SIZES))
        return len(DEFAULT_SIZES)

    async def list_sizes(self, category: Optional[MediaCategory] = None, active_only: bool = True) -> List[ImageSize]:
        stmt = select(ImageSize).order_by(ImageSize.category, ImageSize.label)
        if category is not None:
            stmt = stmt.where(ImageSize.category == MediaCategory(category))
        if active_only:
            stmt = stmt.where(ImageSize.is_active.is_(True))
        async with self._sessions() as session:
            return list(await session.scalars(stmt))

    async def find(self, label: str) -> Optional[ImageSize]:
        async with self._sessions() as session:
            return await session.scalar(select(ImageSize).where(ImageSize.label == slugify(label)))

    async def get(self, label: str) -> ImageSize:
        size = await self.find(label)
        if size is None:
            raise SizeSpecNotFound(label)
        return size

    async def create(self, label: str, width: int, height: int,
                     category: MediaCategory = MediaCategory.UNCATEGORIZED,
                     mode: ResizeMode = ResizeMode.CROP,
                     name: Optional[str] = None, description: Optional[str] = None) -> ImageSize:
        if width <= 0 or height <= 0:
            raise ValueError("Image size dimensions must be positive")
        slug = slugify(label)
        size = ImageSize(label=slug, name=name or label, description=description, width=width, height=height,
                         category=MediaCategory(category), mode=ResizeMode(mode), is_active=True)
        try:
            async with self._sessions() as session, session.begin():
                session.add(size)
        except IntegrityError as e:
            raise DuplicateSizeSpec(slug) from e
        return size

    async def deactivate(self, label: str) -> ImageSize:
        async with self._sessions() as session, session.begin():
            size = await session.scalar(select(ImageSize).where(ImageSize.label == slugify(label)))
            if size is None:
                raise SizeSpecNotFound(label)
            size.is_active = False
        return size

    async def sizes_for_category(self, category: MediaCategory) -> List[Tuple]:
        sizes = [(s.label, s.width, s.height, s.mode) for s in await self.list_sizes(category)]
        return sizes or list(FALLBACK_SIZES)
