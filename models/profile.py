# backend/models/profile.py

from sqlalchemy import Column, String, DateTime, Enum
from db import Base
from models.progress import utcnow

MEMBERSHIPS = ("free", "pro")


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True, index=True)
    membership = Column(Enum(*MEMBERSHIPS, name="membership"), default="free", nullable=False)
    customer_id = Column(String, nullable=True, index=True)
    subscription_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_pro(self):
        return self.membership == "pro"
