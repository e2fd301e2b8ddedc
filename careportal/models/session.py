from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.sql import func
import json

from ..core.database import Base

class PortalSession(Base):
    """Server-side counterpart of the browser's local storage.

    Holds the backend tokens and the cached user for one signed-in client.
    """
    __tablename__ = "portal_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_hash = Column(String(64), unique=True, index=True, nullable=False)

    # Cached user
    user_id = Column(Integer, nullable=False, index=True)
    user_type = Column(String(20), nullable=False)
    user_data = Column(Text, nullable=False, default="{}")

    # Backend tokens
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def user(self) -> dict:
        return json.loads(self.user_data or "{}")

    @user.setter
    def user(self, value: dict):
        self.user_data = json.dumps(value)

    def clear(self):
        """Drop everything the session holds, like ``localStorage.clear()``."""
        self.access_token = None
        self.refresh_token = None
        self.is_active = False

    def __repr__(self):
        return f"<PortalSession(id={self.id}, user_id={self.user_id}, user_type='{self.user_type}')>"
