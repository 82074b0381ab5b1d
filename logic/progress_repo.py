from typing import List, Optional
from sqlalchemy.orm import Session

from models.progress import Progress


class ProgressRepository:
    """Persisted-record collaborator for progress rows, bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_latest_by_user(self, user_id: str) -> Optional[Progress]:
        return (
            self.db.query(Progress)
            .filter(Progress.user_id == user_id)
            .order_by(Progress.updated_at.desc())
            .first()
        )

    def get_by_id(self, progress_id: str) -> Optional[Progress]:
        return self.db.get(Progress, progress_id)

    def list_by_user(self, user_id: str) -> List[Progress]:
        return (
            self.db.query(Progress)
            .filter(Progress.user_id == user_id)
            .order_by(Progress.updated_at.desc())
            .all()
        )

    def insert(self, record: Progress) -> Progress:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def update_by_id(self, progress_id: str, fields: dict) -> Optional[Progress]:
        record = self.db.get(Progress, progress_id)
        if record is None:
            return None
        for key, value in fields.items():
            setattr(record, key, value)
        self.db.commit()
        self.db.refresh(record)
        return record

    def rollback(self):
        self.db.rollback()
