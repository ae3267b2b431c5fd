"""Ingestion, variant resolution and deletion for the media library.

``MediaService`` is what editorial features and the HTTP routes talk to. It
keeps the ingestion order fixed: validate, store the original, write the
catalog row, then derive variants. Variant work is best effort; an asset is
usable as soon as its catalog row exists.
"""
import asyncio
import hashlib
import logging
import os
import uuid
from concurrent.futures import Executor
from typing import Any, Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.config import Settings
from medialib.errors import (
    DecodeError,
    FileTooLarge,
    InvalidImage,
    MediaLibraryError,
    NotPermitted,
    SizeSpecNotFound,
    SourceUnavailable,
    StorageFailure,
)
from medialib.models import MediaAsset, MediaCategory, MediaSource, ResizeMode, UsageType
from medialib.schemas import ExternalPhoto, ExternalSearchPage, UsageRef, VariantOut
from medialib.services import image_probe
from medialib.services.asset_store import AssetStore
from medialib.services.image_processor import ImageProcessor
from medialib.services.media_catalog import CatalogPage, MediaCatalog
from medialib.services.size_specs import FALLBACK_SIZES, SizeSpecRegistry
from medialib.services.unsplash_client import UnsplashClient
from medialib.services.usage_ledger import UsageLedger
from medialib.utils.paths import original_path, public_url, slugify, variant_path

logger = logging.getLogger(__name__)

DISPLAY_LABEL = "display"


class MediaService:
    def __init__(
        self,
        settings: Settings,
        catalog: MediaCatalog,
        ledger: UsageLedger,
        sizes: SizeSpecRegistry,
        store: AssetStore,
        external: Optional[UnsplashClient] = None,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.ledger = ledger
        self.sizes = sizes
        self.store = store
        self.external = external
        self._executor = executor
        self._transform_slots = asyncio.Semaphore(max(1, settings.TRANSFORM_MAX_CONCURRENCY))
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, sessions: async_sessionmaker[AsyncSession],
                      executor: Optional[Executor] = None,
                      external: Optional[UnsplashClient] = None) -> "MediaService":
        store = AssetStore(settings.CONTENT_ROOT)
        if external is None and settings.UNSPLASH_ACCESS_KEY:
            external = UnsplashClient(settings)
        return cls(
            settings=settings,
            catalog=MediaCatalog(sessions, store, settings.DERIVED_PREFIX, executor=executor),
            ledger=UsageLedger(sessions),
            sizes=SizeSpecRegistry(sessions),
            store=store,
            external=external,
            executor=executor,
        )

    # -- plumbing --------------------------------------------------------

    async def _io(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def _cpu(self, fn, *args):
        async with self._transform_slots:
            return await self._io(fn, *args)

    @staticmethod
    def _require(permitted: bool) -> None:
        if not permitted:
            raise NotPermitted()

    def url_for(self, path: str) -> str:
        return public_url(path, self.settings.PUBLIC_URL_PREFIX)

    def original_url(self, asset: MediaAsset) -> str:
        return self.url_for(asset.file_path)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background media task failed: %s", task.exception())

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -- ingestion -------------------------------------------------------

    async def _ingest(self, data: bytes, *, max_bytes: int, external_token: Optional[str] = None,
                      **fields: Any) -> MediaAsset:
        if not data:
            raise InvalidImage("The file is empty.")
        if len(data) > max_bytes:
            raise FileTooLarge(max_bytes)
        if not await self._cpu(image_probe.validate, data):
            raise InvalidImage()
        info = await self._cpu(image_probe.inspect, data)
        file_hash = hashlib.sha256(data).hexdigest()
        duplicates = await self.catalog.find_by_hash(file_hash)
        if duplicates:
            # duplicates are allowed, only reported
            logger.warning("Ingesting a duplicate of media asset(s) %s", ", ".join(a.id for a in duplicates))

        path = original_path(self.settings.ORIGINALS_PREFIX, info.extension, token=external_token,
                             external=external_token is not None)
        await self._io(self.store.save, path, data)
        try:
            asset = await self.catalog.create(
                file_path=path,
                width=info.width,
                height=info.height,
                file_size=len(data),
                mime_type=info.mime_type,
                format=info.format.value,
                file_hash=file_hash,
                **fields,
            )
        except (Exception, asyncio.CancelledError):
            # no catalog row, so the original must not stay behind
            try:
                await self._io(self.store.delete, path)
            except StorageFailure as e:
                logger.error("Could not remove orphaned original %s: %s", path, e)
            raise

        await self._generate_standard_variants(asset, data)
        return asset

    async def _generate_standard_variants(self, asset: MediaAsset, data: bytes) -> None:
        try:
            sizes = await self.sizes.sizes_for_category(asset.category)
            variants = await self._cpu(
                ImageProcessor.generate_variant_set,
                asset.id, data, sizes, self.store, self.settings.DERIVED_PREFIX, self.settings.VARIANT_QUALITY,
            )
            try:
                variants.update(await self._cpu(self._render_display, asset, data))
            except (MediaLibraryError, ValueError, OSError) as e:
                logger.warning("Display rendition for asset %s was not generated: %s", asset.id, e)
            updated = await self.catalog.record_variants(asset.id, variants)
            if updated is not None:
                asset.variants = updated.variants
        except (MediaLibraryError, SQLAlchemyError) as e:
            logger.warning("Standard variants for asset %s were not generated: %s", asset.id, e)

    def _render_display(self, asset: MediaAsset, data: bytes) -> Dict[str, str]:
        """Full-size WebP rendition shown on pages instead of the original upload."""
        image = ImageProcessor.load(data)
        width, height = image.size
        path = variant_path(self.settings.DERIVED_PREFIX, asset.id, DISPLAY_LABEL, width, height, ".webp")
        self.store.save(path, ImageProcessor.optimize_for_web(image, self.settings.WEB_QUALITY))
        return {DISPLAY_LABEL: path}

    async def upload_image(
        self,
        data: bytes,
        filename: str,
        *,
        permitted: bool,
        alt_text: Optional[str] = None,
        title: Optional[str] = None,
        caption: Optional[str] = None,
        tags: Optional[str] = None,
        category: MediaCategory = MediaCategory.UNCATEGORIZED,
        uploaded_by: Optional[str] = None,
    ) -> MediaAsset:
        """Validate and store an uploaded file. The declared content type is never trusted."""
        self._require(permitted)
        file_name = os.path.basename((filename or "").replace("\\", "/"))[:255] or "upload"
        asset = await self._ingest(
            data,
            max_bytes=self.settings.MAX_UPLOAD_BYTES,
            file_name=file_name,
            source=MediaSource.UPLOADED,
            alt_text=alt_text or os.path.splitext(file_name)[0][:200],
            title=title,
            caption=caption,
            tags=tags,
            category=category,
            uploaded_by=uploaded_by,
        )
        logger.info("Uploaded media asset %s (%s, %dx%d)", asset.id, asset.file_name, asset.width, asset.height)
        return asset

    def _external_client(self) -> UnsplashClient:
        if self.external is None:
            raise SourceUnavailable("The photo service is not configured.")
        return self.external

    async def _external_call(self, timeout: float, fn, *args):
        try:
            return await asyncio.wait_for(self._io(fn, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("Photo service call %s timed out after %.0fs", getattr(fn, "__name__", fn), timeout)
            raise SourceUnavailable() from e

    async def search_external(self, query: str, page: int = 1, per_page: int = 30) -> ExternalSearchPage:
        client = self._external_client()
        return await self._external_call(self.settings.EXTERNAL_TIMEOUT_SECONDS, client.search, query, page, per_page)

    async def import_external(
        self,
        remote_id: str,
        *,
        permitted: bool,
        photo: Optional[ExternalPhoto] = None,
        alt_text: Optional[str] = None,
        tags: Optional[str] = None,
        category: MediaCategory = MediaCategory.UNCATEGORIZED,
        uploaded_by: Optional[str] = None,
    ) -> MediaAsset:
        """Import a photo from the external source.

        Attribution comes from the search result the editor picked; it is only
        fetched again when the caller has nothing but the id.
        """
        self._require(permitted)
        client = self._external_client()
        if photo is None:
            photo = await self._external_call(self.settings.EXTERNAL_TIMEOUT_SECONDS, client.get_photo, remote_id)
        elif photo.id != remote_id:
            raise ValueError(f"Photo payload is for {photo.id}, not {remote_id}")

        # a download that fails or times out leaves nothing behind
        data = await self._external_call(self.settings.EXTERNAL_DOWNLOAD_TIMEOUT_SECONDS, client.fetch_bytes, photo)

        token = f"{slugify(remote_id)}-{uuid.uuid4().hex[:8]}"
        photographer = photo.photographer_name or photo.photographer_username
        default_alt = photo.description or photo.alt_description or (f"Photo by {photographer}" if photographer else None)
        asset = await self._ingest(
            data,
            max_bytes=self.settings.MAX_DOWNLOAD_BYTES,
            external_token=token,
            file_name=f"{remote_id}{image_probe.extension_for(image_probe.detect_format(data))}",
            source=MediaSource.EXTERNAL,
            external_id=remote_id,
            photographer_name=photo.photographer_name or None,
            photographer_username=photo.photographer_username or None,
            alt_text=(alt_text or default_alt or remote_id)[:200],
            title=photo.description[:200] if photo.description else None,
            tags=tags,
            category=category,
            uploaded_by=uploaded_by,
        )
        self._spawn(self._io(client.record_usage_notice, remote_id))
        logger.info("Imported external photo %s as media asset %s", remote_id, asset.id)
        return asset

    # -- variants --------------------------------------------------------

    async def _size_for_label(self, label: str):
        spec = await self.sizes.find(label)
        if spec is not None:
            return spec.label, spec.width, spec.height, spec.mode
        slug = slugify(label)
        for name, width, height in FALLBACK_SIZES:
            if name == slug:
                return name, width, height, ResizeMode.CROP
        raise SizeSpecNotFound(label)

    async def resolve_variant_url(self, asset_id: str, label: str) -> VariantOut:
        """Web path of a named variant, rendering it on first request.

        If the variant cannot be rendered the original's URL is returned so the
        page still shows the image.
        """
        asset = await self.catalog.get(asset_id)
        if label == DISPLAY_LABEL and DISPLAY_LABEL in (asset.variants or {}):
            return VariantOut(asset_id=asset.id, label=label, url=self.url_for(asset.variants[label]), generated=False)
        label, width, height, mode = await self._size_for_label(label)
        fmt = ImageProcessor.choose_output_format(image_probe.FormatTag(asset.format))
        path = variant_path(self.settings.DERIVED_PREFIX, asset.id, label, width, height, image_probe.extension_for(fmt))

        if await self._io(self.store.exists, path):
            if (asset.variants or {}).get(label) != path:
                await self._remember_variant(asset.id, label, path)
            return VariantOut(asset_id=asset.id, label=label, url=self.url_for(path), generated=False)

        try:
            original = await self._io(self.store.load, asset.file_path)
            rendered, _ = await self._cpu(
                ImageProcessor.render_variant, original, width, height, mode, self.settings.VARIANT_QUALITY
            )
            await self._io(self.store.save, path, rendered)
        except (DecodeError, StorageFailure, ValueError) as e:
            logger.error("Variant %s of asset %s could not be rendered (path %s): %s", label, asset.id, path, e)
            return VariantOut(asset_id=asset.id, label=label, url=self.url_for(asset.file_path),
                              generated=False, fallback=True)

        await self._remember_variant(asset.id, label, path)
        return VariantOut(asset_id=asset.id, label=label, url=self.url_for(path), generated=True)

    async def _remember_variant(self, asset_id: str, label: str, path: str) -> None:
        # The variant cache is advisory: lookups go by path, and concurrent first
        # requests may overwrite each other's entries (last writer wins).
        try:
            await self.catalog.record_variants(asset_id, {label: path})
        except SQLAlchemyError as e:
            logger.warning("Variant %s of asset %s exists but was not recorded: %s", label, asset_id, e)

    async def regenerate_variants(self, asset_id: str, *, permitted: bool) -> MediaAsset:
        self._require(permitted)
        asset = await self.catalog.get(asset_id)
        data = await self._io(self.store.load, asset.file_path)
        await self._generate_standard_variants(asset, data)
        return asset

    # -- catalog ---------------------------------------------------------

    async def find_duplicates(self, data: bytes) -> List[MediaAsset]:
        return await self.catalog.find_by_hash(hashlib.sha256(data).hexdigest())

    async def get_asset(self, asset_id: str) -> MediaAsset:
        return await self.catalog.get(asset_id)

    async def query(self, **filters: Any) -> CatalogPage:
        return await self.catalog.query(**filters)

    async def update_metadata(self, asset_id: str, patch: Dict[str, Any], *, permitted: bool) -> MediaAsset:
        self._require(permitted)
        return await self.catalog.update(asset_id, patch)

    async def delete_asset(self, asset_id: str, *, permitted: bool) -> MediaAsset:
        self._require(permitted)
        return await self.catalog.delete(asset_id)

    # -- usage -----------------------------------------------------------

    async def attach_usage(self, asset_id: str, consumer_type: str, consumer_id: str, *, permitted: bool,
                           usage_type: Optional[UsageType] = None) -> UsageRef:
        self._require(permitted)
        return await self.ledger.attach(asset_id, consumer_type, consumer_id, usage_type)

    async def detach_usage(self, asset_id: str, consumer_type: str, consumer_id: str, *, permitted: bool) -> bool:
        self._require(permitted)
        return await self.ledger.detach(asset_id, consumer_type, consumer_id)

    async def replace_usage(self, consumer_type: str, consumer_id: str, old_asset_id: Optional[str],
                            new_asset_id: str, *, permitted: bool,
                            usage_type: Optional[UsageType] = None) -> UsageRef:
        self._require(permitted)
        return await self.ledger.replace(consumer_type, consumer_id, old_asset_id, new_asset_id, usage_type)

    async def release_consumer(self, consumer_type: str, consumer_id: str, *, permitted: bool) -> int:
        self._require(permitted)
        return await self.ledger.release_consumer(consumer_type, consumer_id)

    async def list_usages(self, asset_id: str) -> List[UsageRef]:
        await self.catalog.get(asset_id)
        return await self.ledger.list_usages(asset_id)
