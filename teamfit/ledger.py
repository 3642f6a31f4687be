from typing import Iterable

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from .db import upsert
from .models import ActivityIngestion

class DedupLedger:
    """
    Which Strava activities have already been evaluated for a user. Once an
    activity is in here it is never matched against a challenge again.
    """

    def __init__(self, db: Session):
        self.db = db

    def was_processed(self, user_id: str, activity_id: int) -> bool:
        found = self.db.scalar(
            select(ActivityIngestion.id).where(
                ActivityIngestion.user_id == user_id,
                ActivityIngestion.activity_id == activity_id,
            ).limit(1)
        )
        return found is not None

    def mark_processed(self, user_id: str, activity_id: int, raw_payload: dict | None) -> None:
        upsert(
            self.db, ActivityIngestion,
            [{"user_id": user_id, "activity_id": activity_id, "raw_payload": raw_payload}],
            conflict_keys=["user_id", "activity_id"],
            update_columns=[],
        )

    def forget(self, user_id: str, activity_ids: Iterable[int]) -> int:
        result = self.db.execute(
            delete(ActivityIngestion).where(
                ActivityIngestion.user_id == user_id,
                ActivityIngestion.activity_id.in_(list(activity_ids)),
            )
        )
        return result.rowcount or 0
