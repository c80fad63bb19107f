# Base
from deliverywatch.models.base import TimestampMixin, IdMixin

# Reference data
from deliverywatch.models.master_stock import MasterStock

# Market Data
from deliverywatch.models.daily_record import DailyRecord

# Derived
from deliverywatch.models.spike_count import SpikeCount

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "MasterStock",
    "DailyRecord",
    "SpikeCount",
]
