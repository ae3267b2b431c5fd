import asyncio
import io
import time
from unittest.mock import MagicMock

import pytest
from PIL import Image
from sqlalchemy.exc import OperationalError

from medialib.errors import (
    AssetInUse,
    InvalidImage,
    NotPermitted,
    SizeSpecNotFound,
    SourceUnavailable,
    StorageFailure,
)
from medialib.models import MediaCategory, MediaSource, ResizeMode
from medialib.schemas import ExternalPhoto, ExternalPhotoUrls
from medialib.services.media_service import MediaService


def _size(data: bytes):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def _files(root):
    return [p for p in root.rglob("*") if p.is_file()] if root.exists() else []


def _photo():
    return ExternalPhoto(
        id="abc123",
        alt_description="a tree in a field",
        width=640,
        height=480,
        urls=ExternalPhotoUrls(full="https://images.example/full"),
        photographer_name="Jane Doe",
        photographer_username="janedoe",
    )


def test_upload_then_resolve_variants(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        await service.sizes.create("thumbnail", 300, 300, mode=ResizeMode.CROP)
        await service.sizes.create("hero", 1800, 600, mode=ResizeMode.FIT)
        asset = await service.upload_image(make_image(4000, 3000, fmt="JPEG"), "photos/beach.jpg", permitted=True)
        thumb = await service.resolve_variant_url(asset.id, "thumbnail")
        hero = await service.resolve_variant_url(asset.id, "hero")
        return asset, thumb, hero

    asset, thumb, hero = asyncio.run(scenario())
    assert asset.source is MediaSource.UPLOADED
    assert asset.format == "JPEG"
    assert (asset.width, asset.height) == (4000, 3000)
    assert asset.file_name == "beach.jpg"
    assert asset.alt_text == "beach"
    assert asset.file_path.startswith("uploads/media/originals/") and asset.file_path.endswith(".jpg")
    assert len(asset.file_hash) == 64
    assert set(asset.variants) == {"thumbnail", "hero", "display"}
    assert _size(store.load(asset.variants["display"])) == (4000, 3000)
    assert asset.variants["display"].endswith("display_4000x3000.webp")

    assert thumb.url == f"/content/{asset.variants['thumbnail']}"
    assert _size(store.load(asset.variants["thumbnail"])) == (300, 300)
    w, h = _size(store.load(asset.variants["hero"]))
    assert w <= 1800 and h <= 600
    assert abs(w / h - 4000 / 3000) < 0.01
    assert hero.fallback is False


def test_variant_generated_on_first_request(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        asset = await service.upload_image(make_image(800, 600, fmt="PNG"), "logo.png", permitted=True)
        await service.sizes.create("Blog Mini", 100, 84)
        first = await service.resolve_variant_url(asset.id, "blog-mini")
        second = await service.resolve_variant_url(asset.id, "blog-mini")
        return asset, first, second, await service.get_asset(asset.id)

    asset, first, second, reloaded = asyncio.run(scenario())
    # no sizes registered for the category at upload time
    assert set(asset.variants) == {"thumbnail", "small", "medium", "display"}
    assert first.generated is True and second.generated is False
    assert first.url == second.url
    assert first.url.endswith(f"/{asset.id}/blog-mini_100x84.png")
    assert reloaded.variants["blog-mini"] == f"uploads/media/derived/{asset.id}/blog-mini_100x84.png"


def test_variant_falls_back_to_original(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        asset = await service.upload_image(make_image(200, 200, fmt="JPEG"), "a.jpg", permitted=True)
        await service.sizes.create("wide", 400, 100)
        store.delete(asset.file_path)
        return asset, await service.resolve_variant_url(asset.id, "wide")

    asset, result = asyncio.run(scenario())
    assert result.fallback is True
    assert result.url == f"/content/{asset.file_path}"


def test_unknown_variant_label(settings, sessions, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        asset = await service.upload_image(make_image(), "a.png", permitted=True)
        await service.resolve_variant_url(asset.id, "no-such-size")

    with pytest.raises(SizeSpecNotFound):
        asyncio.run(scenario())


@pytest.mark.parametrize("data", [b"", b"<html>not an image</html>"])
def test_invalid_upload_creates_nothing(settings, sessions, store, data):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        with pytest.raises(InvalidImage):
            await service.upload_image(data, "fake.jpg", permitted=True)
        return await service.query()

    assert asyncio.run(scenario()).total == 0
    assert _files(store.root) == []


def test_truncated_upload_creates_nothing(settings, sessions, store, make_image):
    data = make_image(400, 300, fmt="JPEG")

    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        with pytest.raises(InvalidImage):
            await service.upload_image(data[: len(data) // 3], "cut.jpg", permitted=True)
        return await service.query()

    assert asyncio.run(scenario()).total == 0


def test_oversize_upload_rejected(settings, sessions, make_image):
    small_limit = settings.model_copy(update={"MAX_UPLOAD_BYTES": 10})

    async def scenario():
        service = MediaService.from_settings(small_limit, sessions)
        await service.upload_image(make_image(), "big.png", permitted=True)

    with pytest.raises(InvalidImage):
        asyncio.run(scenario())


def test_mutations_require_permission(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        with pytest.raises(NotPermitted):
            await service.upload_image(make_image(), "a.png", permitted=False)
        asset = await service.upload_image(make_image(), "a.png", permitted=True)
        with pytest.raises(NotPermitted):
            await service.delete_asset(asset.id, permitted=False)
        with pytest.raises(NotPermitted):
            await service.update_metadata(asset.id, {"title": "x"}, permitted=False)
        with pytest.raises(NotPermitted):
            await service.attach_usage(asset.id, "blog", "1", permitted=False)
        return await service.query()

    assert asyncio.run(scenario()).total == 1


def test_catalog_failure_removes_stored_original(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)

        async def broken_create(**fields):
            raise StorageFailure("catalog_create", fields["file_path"])

        service.catalog.create = broken_create
        with pytest.raises(StorageFailure):
            await service.upload_image(make_image(), "a.png", permitted=True)

    asyncio.run(scenario())
    assert _files(store.root) == []


def test_import_external_photo(settings, sessions, store, make_image):
    client = MagicMock()
    client.fetch_bytes.return_value = make_image(640, 480, fmt="JPEG")
    client.record_usage_notice.side_effect = RuntimeError("tracking endpoint down")

    async def scenario():
        service = MediaService.from_settings(settings, sessions, external=client)
        asset = await service.import_external("abc123", permitted=True, photo=_photo(), category=MediaCategory.GALLERY)
        await service.wait_for_background()
        return asset

    asset = asyncio.run(scenario())
    assert asset.source is MediaSource.EXTERNAL
    assert asset.external_id == "abc123"
    assert asset.photographer_name == "Jane Doe"
    assert asset.photographer_username == "janedoe"
    assert asset.alt_text == "a tree in a field"
    assert asset.category is MediaCategory.GALLERY
    assert asset.file_path.startswith("uploads/media/originals/external/abc123-")
    assert store.exists(asset.file_path)
    client.record_usage_notice.assert_called_once_with("abc123")
    client.get_photo.assert_not_called()


def test_import_by_id_fetches_photo(settings, sessions, make_image):
    client = MagicMock()
    client.get_photo.return_value = _photo()
    client.fetch_bytes.return_value = make_image(64, 64, fmt="JPEG")
    client.record_usage_notice.return_value = True

    async def scenario():
        service = MediaService.from_settings(settings, sessions, external=client)
        asset = await service.import_external("abc123", permitted=True)
        await service.wait_for_background()
        return asset

    asset = asyncio.run(scenario())
    client.get_photo.assert_called_once_with("abc123")
    assert asset.photographer_name == "Jane Doe"


def test_import_timeout_is_source_unavailable(settings, sessions, store, make_image):
    fast = settings.model_copy(update={"EXTERNAL_DOWNLOAD_TIMEOUT_SECONDS": 0.05})
    client = MagicMock()

    def slow_fetch(photo):
        time.sleep(0.5)
        return make_image()

    client.fetch_bytes.side_effect = slow_fetch

    async def scenario():
        service = MediaService.from_settings(fast, sessions, external=client)
        with pytest.raises(SourceUnavailable):
            await service.import_external("abc123", permitted=True, photo=_photo())
        return await service.query()

    assert asyncio.run(scenario()).total == 0
    client.record_usage_notice.assert_not_called()


def test_import_without_configured_source(settings, sessions):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        await service.import_external("abc123", permitted=True)

    with pytest.raises(SourceUnavailable):
        asyncio.run(scenario())


def test_delete_in_use_then_after_detach(settings, sessions, store, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        asset = await service.upload_image(make_image(300, 300, fmt="PNG"), "a.png", permitted=True)
        await service.attach_usage(asset.id, "event", "12", permitted=True)
        with pytest.raises(AssetInUse) as info:
            await service.delete_asset(asset.id, permitted=True)
        assert len(info.value.usages) == 1
        await service.detach_usage(asset.id, "event", "12", permitted=True)
        await service.delete_asset(asset.id, permitted=True)
        return asset

    asset = asyncio.run(scenario())
    assert not store.exists(asset.file_path)
    assert all(not store.exists(p) for p in asset.variants.values())
    assert _files(store.root / "uploads/media/derived") == []


def test_duplicate_upload_is_reported(settings, sessions, make_image, caplog):
    data = make_image(50, 40, fmt="PNG")

    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        first = await service.upload_image(data, "one.png", permitted=True)
        second = await service.upload_image(data, "two.png", permitted=True)
        return first, second, await service.find_duplicates(data), await service.find_duplicates(make_image(5, 5))

    with caplog.at_level("WARNING", logger="medialib.services.media_service"):
        first, second, duplicates, none = asyncio.run(scenario())
    assert first.file_hash == second.file_hash
    assert [a.id for a in duplicates] == [first.id, second.id]
    assert none == []
    assert any(first.id in r.getMessage() for r in caplog.records)


def test_unrecorded_existing_variant_still_resolves(settings, sessions, make_image):
    async def scenario():
        service = MediaService.from_settings(settings, sessions)
        asset = await service.upload_image(make_image(400, 300, fmt="JPEG"), "a.jpg", permitted=True)
        await service.sizes.create("card", 120, 80)
        await service.resolve_variant_url(asset.id, "card")

        async def locked(asset_id, variants):
            raise OperationalError("UPDATE media_assets", {}, Exception("database is locked"))

        service.catalog.record_variants = locked
        # the file exists on disk but the cached mapping does not list it
        asset.variants = {}
        service.catalog.get = _returning(asset)
        return await service.resolve_variant_url(asset.id, "card")

    result = asyncio.run(scenario())
    assert result.generated is False
    assert result.fallback is False
    assert result.url.endswith("card_120x80.webp")


def _returning(value):
    async def get(asset_id):
        return value
    return get
