# backend/models/lesson.py

import uuid
from sqlalchemy import Column, String, DateTime, JSON, Enum
from db import Base
from models.progress import utcnow

LEVELS = ("beginner", "intermediate", "advanced")


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    level = Column(Enum(*LEVELS, name="lesson_level"), nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
