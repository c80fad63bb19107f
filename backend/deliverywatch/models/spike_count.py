from sqlalchemy import Column, DateTime, Integer, String
from deliverywatch.core.database import Base
from deliverywatch.models.base import IdMixin

class SpikeCount(Base, IdMixin):
    """
    Derived delivery spike counters per symbol.
    Fully overwritten by every recompute run; rebuildable from bhavcopy_data.
    """
    __tablename__ = "delivery_spike_counts"

    symbol = Column(String(50), nullable=False, unique=True, index=True)
    spikes_1w = Column(Integer, nullable=False, default=0)
    spikes_1m = Column(Integer, nullable=False, default=0)
    spikes_3m = Column(Integer, nullable=False, default=0)
    spikes_6m = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True))  # start instant of the run that wrote the row
