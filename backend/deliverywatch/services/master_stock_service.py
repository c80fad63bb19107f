import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deliverywatch.core.config import settings
from deliverywatch.core.database import AsyncSessionLocal
from deliverywatch.models.master_stock import MasterStock

logger = logging.getLogger(__name__)


class MasterStockService:
    """Read access to the reference master list of securities."""

    def __init__(self, session: Optional[AsyncSession] = None, series: str | None = None):
        self.session = session
        self.series = series or settings.SPIKE_SERIES

    async def get_active_symbols(self) -> list[str]:
        stmt = (
            select(MasterStock.symbol)
            .where(
                MasterStock.is_active.is_(True),
                MasterStock.series == self.series,
            )
            .distinct()
            .order_by(MasterStock.symbol.asc())
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            symbols = [row[0] for row in result.all()]
        logger.debug("Resolved %d active %s symbols", len(symbols), self.series)
        return symbols

    async def is_listed(self, symbol: str) -> bool:
        stmt = select(MasterStock.id).where(MasterStock.symbol == symbol).limit(1)
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                yield session
