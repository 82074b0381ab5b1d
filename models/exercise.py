# backend/models/exercise.py

import uuid
from sqlalchemy import Column, String, DateTime, JSON, Enum, ForeignKey
from db import Base
from models.progress import utcnow

EXERCISE_TYPES = ("quiz", "writing", "speaking")


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lesson_id = Column(String(36), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(*EXERCISE_TYPES, name="exercise_type"), nullable=False)
    content = Column(JSON, nullable=False)  # e.g. {"prompt": ..., "correctAnswer": ...}
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
