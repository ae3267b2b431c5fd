import asyncio
import logging
import math
from concurrent.futures import Executor
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.errors import AssetInUse, AssetNotFound, StorageFailure
from medialib.models import MediaAsset, MediaCategory, MediaSource, MediaUsage
from medialib.schemas import MediaStats, UsageRef
from medialib.services.asset_store import AssetStore
from medialib.utils.paths import variant_dir

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"alt_text", "title", "caption", "tags", "category"}
MAX_PAGE_SIZE = 100


def _like_pattern(term: str) -> str:
    escaped = term.strip().replace("/", "//").replace("%", "/%").replace("_", "/_")
    return f"%{escaped}%"


class CatalogPage:
    def __init__(self, items: List[MediaAsset], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


class MediaCatalog:
    """The authoritative record of every asset in the library."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession], store: AssetStore, derived_prefix: str,
                 executor: Optional[Executor] = None):
        self._sessions = sessions
        self._store = store
        self._executor = executor
        self._derived_prefix = derived_prefix

    async def create(self, **fields: Any) -> MediaAsset:
        asset = MediaAsset(**fields)
        if asset.category is None:
            asset.category = MediaCategory.UNCATEGORIZED
        asset.category = MediaCategory(asset.category)
        asset.source = MediaSource(asset.source or MediaSource.UPLOADED)
        if asset.variants is None:
            asset.variants = {}
        try:
            async with self._sessions() as session, session.begin():
                session.add(asset)
        except IntegrityError as e:
            raise StorageFailure("catalog_create", fields.get("file_path", ""),
                                 "A media asset already uses this storage path") from e
        logger.info("Catalogued media asset %s (%s, %s)", asset.id, asset.source.value, asset.file_path)
        return asset

    async def find(self, asset_id: str) -> Optional[MediaAsset]:
        async with self._sessions() as session:
            return await session.get(MediaAsset, asset_id)

    async def get(self, asset_id: str) -> MediaAsset:
        asset = await self.find(asset_id)
        if asset is None:
            raise AssetNotFound(asset_id)
        return asset

    async def find_by_hash(self, file_hash: str) -> List[MediaAsset]:
        """Assets whose original has exactly these bytes, oldest first."""
        async with self._sessions() as session:
            rows = await session.scalars(
                select(MediaAsset).where(MediaAsset.file_hash == file_hash).order_by(MediaAsset.created_at, MediaAsset.id)
            )
            return list(rows)

    async def update(self, asset_id: str, patch: Dict[str, Any]) -> MediaAsset:
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        async with self._sessions() as session, session.begin():
            asset = await session.get(MediaAsset, asset_id, with_for_update=True)
            if asset is None:
                raise AssetNotFound(asset_id)
            for key, value in patch.items():
                if key == "category":
                    if value is None:
                        continue
                    value = MediaCategory(value)
                setattr(asset, key, value)
        return asset

    async def record_variants(self, asset_id: str, variants: Dict[str, str]) -> Optional[MediaAsset]:
        """Merge label -> path entries into the variant cache. Missing assets are ignored."""
        if not variants:
            return None
        async with self._sessions() as session, session.begin():
            asset = await session.get(MediaAsset, asset_id, with_for_update=True)
            if asset is None:
                return None
            # reassign so the JSON column is flagged dirty
            asset.variants = {**(asset.variants or {}), **variants}
        return asset

    async def query(
        self,
        category: Optional[MediaCategory] = None,
        source: Optional[MediaSource] = None,
        search: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        page: int = 1,
        page_size: int = 24,
    ) -> CatalogPage:
        page = max(1, page)
        page_size = min(max(1, page_size), MAX_PAGE_SIZE)
        conditions = []
        if category is not None:
            conditions.append(MediaAsset.category == MediaCategory(category))
        if source is not None:
            conditions.append(MediaAsset.source == MediaSource(source))
        if search and search.strip():
            pattern = _like_pattern(search)
            conditions.append(or_(
                MediaAsset.file_name.ilike(pattern, escape="/"),
                MediaAsset.title.ilike(pattern, escape="/"),
                MediaAsset.alt_text.ilike(pattern, escape="/"),
                MediaAsset.tags.ilike(pattern, escape="/"),
            ))
        tag_terms = [t for t in (tags or []) if t and t.strip()]
        if tag_terms:
            conditions.append(or_(*(MediaAsset.tags.ilike(_like_pattern(t), escape="/") for t in tag_terms)))

        async with self._sessions() as session:
            total = await session.scalar(select(func.count()).select_from(MediaAsset).where(*conditions))
            rows = await session.scalars(
                select(MediaAsset)
                .where(*conditions)
                .order_by(MediaAsset.created_at.desc(), MediaAsset.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return CatalogPage(list(rows), total or 0, page, page_size)

    async def stats(self) -> MediaStats:
        async with self._sessions() as session:
            total_count, total_bytes = (await session.execute(
                select(func.count(MediaAsset.id), func.coalesce(func.sum(MediaAsset.file_size), 0))
            )).one()
            by_category = (await session.execute(
                select(MediaAsset.category, func.count(MediaAsset.id)).group_by(MediaAsset.category)
            )).all()
        return MediaStats(
            total_count=total_count,
            total_bytes=int(total_bytes),
            by_category={category: count for category, count in by_category},
        )

    async def _usages(self, asset_id: str) -> List[UsageRef]:
        async with self._sessions() as session:
            rows = await session.scalars(select(MediaUsage).where(MediaUsage.asset_id == asset_id).order_by(MediaUsage.id))
            return [UsageRef.model_validate(u) for u in rows]

    async def delete(self, asset_id: str) -> MediaAsset:
        """Remove the catalog row, then its files.

        The in-use check and the row removal are one conditional DELETE, so an
        attach that committed first makes this fail with ``AssetInUse``. File
        cleanup afterwards is best effort.
        """
        try:
            async with self._sessions() as session, session.begin():
                asset = await session.get(MediaAsset, asset_id)
                if asset is None:
                    raise AssetNotFound(asset_id)
                result = await session.execute(
                    delete(MediaAsset)
                    .where(MediaAsset.id == asset_id)
                    .where(~exists().where(MediaUsage.asset_id == asset_id))
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
        except IntegrityError:
            # the foreign key caught a usage inserted under us
            deleted = 0
        if not deleted:
            usages = await self._usages(asset_id)
            if not usages and await self.find(asset_id) is None:
                raise AssetNotFound(asset_id)
            logger.warning("Cannot delete media asset %s - it is used by %d item(s)", asset_id, len(usages))
            raise AssetInUse(asset_id, usages)

        logger.info("Deleted media asset %s", asset_id)
        await self._remove_files(asset)
        return asset

    async def _remove_files(self, asset: MediaAsset) -> None:
        loop = asyncio.get_running_loop()
        paths = [asset.file_path, *(asset.variants or {}).values()]
        for path in paths:
            try:
                await loop.run_in_executor(self._executor, self._store.delete, path)
            except StorageFailure as e:
                logger.error("Could not remove file %s of deleted asset %s (%s): %s", path, asset.id, e.operation, e)
        try:
            await loop.run_in_executor(self._executor, self._store.delete_tree, variant_dir(self._derived_prefix, asset.id))
        except StorageFailure as e:
            logger.error("Could not remove variant directory of deleted asset %s: %s", asset.id, e)
