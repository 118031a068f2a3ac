from enum import Enum

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database.database import Base
from models.user import User


class SocialProvider(str, Enum):
    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"
    APPLE = "APPLE"


class SocialLogin(Base):
    __tablename__ = "social_logins"
    __table_args__ = (UniqueConstraint("user_id", "provider"),)

    social_login_id = Column(String, primary_key=True, nullable=False, index=True)
    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), nullable=False
    )
    provider = Column(String, nullable=False)
    provider_id = Column(String, nullable=False)
    time_created = Column(String, nullable=True)

    user = relationship("User", back_populates="social_logins")
