import asyncio
import io

import pytest
from PIL import Image

from medialib.config import Settings
from medialib.db import create_engine, create_sessionmaker, init_models
from medialib.services.asset_store import AssetStore


def encode_image(width=64, height=48, fmt="PNG", mode="RGB", color=(200, 30, 30)) -> bytes:
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    return encode_image


@pytest.fixture
def settings(tmp_path):
    return Settings(
        CONTENT_ROOT=str(tmp_path / "content"),
        DATABASE_URL_ASYNC=f"sqlite+aiosqlite:///{tmp_path / 'media.db'}",
        SEED_DEFAULT_SIZES=False,
        UNSPLASH_ACCESS_KEY="",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def store(settings):
    return AssetStore(settings.CONTENT_ROOT)


@pytest.fixture
def sessions(settings):
    engine = create_engine(settings)
    asyncio.run(init_models(engine))
    yield create_sessionmaker(engine)
    asyncio.run(engine.dispose())
