from sqlalchemy import BigInteger, Column, Date, Index, Integer, Numeric, String, UniqueConstraint
from deliverywatch.core.database import Base
from deliverywatch.models.base import IdMixin, TimestampMixin

class DailyRecord(Base, IdMixin, TimestampMixin):
    """
    One trading day of exchange bhavcopy data for one symbol and series.
    Written by the ingestion layer; the spike engine only reads it.
    """
    __tablename__ = "bhavcopy_data"
    __table_args__ = (
        UniqueConstraint("symbol", "series", "trade_date", name="uq_bhavcopy_data_symbol_series_date"),
        Index("ix_bhavcopy_data_symbol_trade_date", "symbol", "trade_date"),
    )

    master_stock_id = Column(Integer, index=True)
    symbol = Column(String(50), nullable=False)
    series = Column(String(10), nullable=False)
    trade_date = Column(Date, nullable=False, index=True)
    prev_close = Column(Numeric(10, 2))
    open_price = Column(Numeric(10, 2))
    high_price = Column(Numeric(10, 2))
    low_price = Column(Numeric(10, 2))
    last_price = Column(Numeric(10, 2))
    close_price = Column(Numeric(10, 2))
    avg_price = Column(Numeric(10, 2))
    total_traded_qty = Column(BigInteger)
    turnover_lacs = Column(Numeric(14, 2))
    no_of_trades = Column(BigInteger)
    deliv_qty = Column(BigInteger)
    deliv_per = Column(Numeric(5, 2))  # delivery percentage, 0..100
