from sqlalchemy import Boolean, Column, String, UniqueConstraint
from deliverywatch.core.database import Base
from deliverywatch.models.base import IdMixin, TimestampMixin

class MasterStock(Base, IdMixin, TimestampMixin):
    """
    Reference master list of listed securities.
    Only active symbols take part in the spike recompute.
    """
    __tablename__ = "master_stocks"
    __table_args__ = (
        UniqueConstraint("symbol", "series", name="uq_master_stocks_symbol_series"),
    )

    symbol = Column(String(50), nullable=False, index=True)
    series = Column(String(10), nullable=False, default="EQ")
    company_name = Column(String(255))
    isin = Column(String(20))
    is_active = Column(Boolean, nullable=False, default=True)
