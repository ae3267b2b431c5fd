import logging
from typing import List, Optional

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.errors import AssetNotFound
from medialib.models import MediaAsset, MediaUsage, UsageType
from medialib.schemas import UsageRef

logger = logging.getLogger(__name__)

def _to_ref(usage: MediaUsage) -> UsageRef:
    return UsageRef.model_validate(usage)

class UsageLedger:
    """Which editorial entities currently display which asset.

    The ledger only records what consumers tell it; callers attach when they
    adopt an image and detach when they drop it.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    @staticmethod
    def _pair(asset_id: str, consumer_type: str, consumer_id: str):
        return (
            MediaUsage.asset_id == asset_id,
            MediaUsage.consumer_type == consumer_type,
            MediaUsage.consumer_id == str(consumer_id),
        )

    async def _attach_in(self, session: AsyncSession, asset_id: str, consumer_type: str, consumer_id: str,
                         usage_type: Optional[UsageType]) -> MediaUsage:
        existing = await session.scalar(select(MediaUsage).where(*self._pair(asset_id, consumer_type, consumer_id)))
        if existing is not None:
            return existing
        if await session.get(MediaAsset, asset_id) is None:
            raise AssetNotFound(asset_id)
        usage = MediaUsage(asset_id=asset_id, consumer_type=consumer_type, consumer_id=str(consumer_id), usage_type=usage_type)
        session.add(usage)
        await session.flush()
        return usage

    async def attach(self, asset_id: str, consumer_type: str, consumer_id: str,
                     usage_type: Optional[UsageType] = None) -> UsageRef:
        try:
            async with self._sessions() as session, session.begin():
                usage = await self._attach_in(session, asset_id, consumer_type, consumer_id, usage_type)
                return _to_ref(usage)
        except IntegrityError:
            # lost a race: either the same pair was attached concurrently or the asset was deleted
            async with self._sessions() as session:
                usage = await session.scalar(select(MediaUsage).where(*self._pair(asset_id, consumer_type, consumer_id)))
                if usage is None:
                    raise AssetNotFound(asset_id)
                return _to_ref(usage)

    async def detach(self, asset_id: str, consumer_type: str, consumer_id: str) -> bool:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(MediaUsage).where(*self._pair(asset_id, consumer_type, consumer_id))
            )
        return result.rowcount > 0

    async def replace(self, consumer_type: str, consumer_id: str, old_asset_id: Optional[str], new_asset_id: str,
                      usage_type: Optional[UsageType] = None) -> UsageRef:
        """Swap the image a consumer shows, in one transaction."""
        async with self._sessions() as session, session.begin():
            if old_asset_id and old_asset_id != new_asset_id:
                await session.execute(delete(MediaUsage).where(*self._pair(old_asset_id, consumer_type, consumer_id)))
            usage = await self._attach_in(session, new_asset_id, consumer_type, consumer_id, usage_type)
            return _to_ref(usage)

    async def release_consumer(self, consumer_type: str, consumer_id: str) -> int:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(MediaUsage).where(
                    MediaUsage.consumer_type == consumer_type,
                    MediaUsage.consumer_id == str(consumer_id),
                )
            )
        if result.rowcount:
            logger.info("Released %d media usage(s) held by %s %s", result.rowcount, consumer_type, consumer_id)
        return result.rowcount

    async def is_in_use(self, asset_id: str) -> bool:
        async with self._sessions() as session:
            return bool(await session.scalar(select(exists().where(MediaUsage.asset_id == asset_id))))

    async def list_usages(self, asset_id: str) -> List[UsageRef]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(MediaUsage).where(MediaUsage.asset_id == asset_id).order_by(MediaUsage.id)
            )
            return [_to_ref(u) for u in rows]
