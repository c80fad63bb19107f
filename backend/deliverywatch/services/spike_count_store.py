import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from deliverywatch.core.database import AsyncSessionLocal
from deliverywatch.models.spike_count import SpikeCount
from deliverywatch.strategy.delivery_spike_engine import SpikeCountResult

logger = logging.getLogger(__name__)


class SpikeCountStore:
    """Persistence for the derived delivery_spike_counts table."""

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def upsert(self, result: SpikeCountResult, updated_at: datetime) -> None:
        """Overwrite (or create) one symbol's row in its own transaction."""
        values = {"symbol": result.symbol, **result.as_dict(), "updated_at": updated_at}
        stmt = insert(SpikeCount).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol"],
            set_={
                "spikes_1w": stmt.excluded.spikes_1w,
                "spikes_1m": stmt.excluded.spikes_1m,
                "spikes_3m": stmt.excluded.spikes_3m,
                "spikes_6m": stmt.excluded.spikes_6m,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._get_session() as session:
            await session.execute(stmt)

    async def list_with_spikes(self) -> list[SpikeCount]:
        """Rows with at least one non-zero counter, most 1W spikes first."""
        stmt = (
            select(SpikeCount)
            .where(
                or_(
                    SpikeCount.spikes_1w > 0,
                    SpikeCount.spikes_1m > 0,
                    SpikeCount.spikes_3m > 0,
                    SpikeCount.spikes_6m > 0,
                )
            )
            .order_by(SpikeCount.spikes_1w.desc(), SpikeCount.symbol.asc())
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get(self, symbol: str) -> Optional[SpikeCount]:
        stmt = select(SpikeCount).where(SpikeCount.symbol == symbol)
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def delete_except(self, symbols: Iterable[str]) -> int:
        """Drop rows whose symbol is not in ``symbols`` (deprovisioned)."""
        keep = list(symbols)
        stmt = delete(SpikeCount)
        if keep:
            stmt = stmt.where(SpikeCount.symbol.not_in(keep))
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
