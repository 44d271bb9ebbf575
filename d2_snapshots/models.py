"""
Daily snapshot model

One row per UTC day, keyed by date, holding the headline metrics that the
billing and crash-reporting vendors only expose as current values.
"""

from sqlalchemy import TIMESTAMP, Column, Date, Integer
from sqlalchemy.sql import func

from database.base import Base

SNAPSHOT_FIELDS = (
    "mrr",
    "subscribers",
    "active_trials",
    "revenue_28d",
    "active_users_28d",
    "new_customers_28d",
    "transactions_28d",
    "sentry_unresolved",
)


class DailySnapshot(Base):
    __tablename__ = "daily_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    mrr = Column(Integer, nullable=False, default=0)  # USD cents
    subscribers = Column(Integer, nullable=False, default=0)
    active_trials = Column(Integer, nullable=False, default=0)
    revenue_28d = Column(Integer, nullable=False, default=0)  # USD cents
    active_users_28d = Column(Integer, nullable=False, default=0)
    new_customers_28d = Column(Integer, nullable=False, default=0)
    transactions_28d = Column(Integer, nullable=False, default=0)
    sentry_unresolved = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def to_dict(self):
        data = {"date": self.date.isoformat()}
        data.update({name: getattr(self, name) for name in SNAPSHOT_FIELDS})
        return data

    def __repr__(self):
        return f"<DailySnapshot(date={self.date}, mrr={self.mrr}, subscribers={self.subscribers})>"
