# backend/models/submission.py
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey
from datetime import datetime, timezone
from db import Base

class ExerciseSubmission(Base):
    __tablename__ = "exercise_submissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)
    exercise_id = Column(String(36), ForeignKey("exercises.id", ondelete="CASCADE"), index=True)
    response = Column(String)
    score = Column(Integer, default=0)
    was_correct = Column(Boolean, default=False)
    xp_awarded = Column(Integer, default=0)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
