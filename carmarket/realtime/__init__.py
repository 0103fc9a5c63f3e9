"""
Realtime change feed (Redis Pub/Sub)
"""

from carmarket.realtime.filters import RowFilter, ChangeFilter
from carmarket.realtime.publisher import publish_change, channel_for
from carmarket.realtime.feed import RealtimeFeed

__all__ = ["RowFilter", "ChangeFilter", "publish_change", "channel_for", "RealtimeFeed"]
