from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database.database import Base
from models.user import User


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    token_id = Column(String, nullable=False, primary_key=True, index=True)
    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), nullable=False, index=True
    )
    # One grant per session, rotated in place on every refresh
    session_id = Column(
        String,
        ForeignKey("user_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    token_hash = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)

    user = relationship("User", back_populates="refresh_tokens")
