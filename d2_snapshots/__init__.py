"""
D2 Snapshots - daily rollup of headline metrics into the relational store
"""

from .builder import SnapshotBuilder, capture_daily_snapshot
from .models import DailySnapshot
from .store import SnapshotStore

__all__ = ["DailySnapshot", "SnapshotStore", "SnapshotBuilder", "capture_daily_snapshot"]
