"""
Snapshot store - upsert-by-date persistence for DailySnapshot rows
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from core.exceptions import DatabaseError, ValidationError
from core.logging import get_logger

from .models import SNAPSHOT_FIELDS, DailySnapshot

logger = get_logger(__name__, domain="d2")

_UPSERT_DIALECTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class SnapshotStore:
    """Reads and writes daily snapshots through a SQLAlchemy session"""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _row_values(values: Dict[str, Any]) -> Dict[str, Any]:
        day = values.get("date")
        if isinstance(day, str):
            try:
                day = date.fromisoformat(day)
            except ValueError as e:
                raise ValidationError(f"Invalid snapshot date {day!r}", field="date") from e
        if not isinstance(day, date):
            raise ValidationError("Snapshot date is required", field="date")

        row = {"date": day}
        row.update({name: int(values.get(name) or 0) for name in SNAPSHOT_FIELDS})
        return row

    def upsert(self, values: Dict[str, Any]) -> DailySnapshot:
        """
        Insert the snapshot for ``values["date"]`` or overwrite the existing one

        An overwrite also resets ``created_at`` to the time of the write.

        Args:
            values: ``date`` (date or ``YYYY-MM-DD``) plus metric columns; missing metrics store 0

        Returns:
            The persisted row

        Raises:
            ValidationError: If the date is missing or malformed
            DatabaseError: If the write fails
        """
        row = self._row_values(values)
        dialect = self.session.get_bind().dialect.name

        try:
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is not None:
                stmt = insert(DailySnapshot).values(**row)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[DailySnapshot.date],
                    set_={**{name: stmt.excluded[name] for name in SNAPSHOT_FIELDS}, "created_at": func.now()},
                )
                self.session.execute(stmt)
            else:
                existing = self.session.query(DailySnapshot).filter(DailySnapshot.date == row["date"]).first()
                if existing is None:
                    self.session.add(DailySnapshot(**row))
                else:
                    for name in SNAPSHOT_FIELDS:
                        setattr(existing, name, row[name])
                    existing.created_at = func.now()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to upsert snapshot for {row['date']}: {e}", operation="upsert") from e

        logger.info(f"Upserted daily snapshot for {row['date']}")
        snapshot = self.get(row["date"])
        self.session.refresh(snapshot)
        return snapshot

    def get(self, day: date) -> Optional[DailySnapshot]:
        return self.session.query(DailySnapshot).filter(DailySnapshot.date == day).first()

    def get_history(self, days: int = 90, today: Optional[date] = None) -> List[DailySnapshot]:
        """Snapshots from ``today - days`` onward, oldest first"""
        since = (today or date.today()) - timedelta(days=days)
        return (
            self.session.query(DailySnapshot)
            .filter(DailySnapshot.date >= since)
            .order_by(DailySnapshot.date.asc())
            .all()
        )
