from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database.database import Base
from models.user import User


class UserSession(Base):
    """One logged-in device or browser; tokens reference it by ``session_id``."""

    __tablename__ = "user_sessions"

    session_id = Column(String, primary_key=True, nullable=False, index=True)
    user_id = Column(
        String,
        ForeignKey(User.user_id, ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="sessions")
