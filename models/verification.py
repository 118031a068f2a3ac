from sqlalchemy import Column, DateTime, ForeignKey, String

from database.database import Base
from models.user import User

# At most one outstanding record per user and kind; rows are deleted once consumed
# and ignored once ``expires_at`` has passed.


class EmailVerification(Base):
    __tablename__ = "email_verifications"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    token = Column(String, nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)


class PhoneVerification(Base):
    __tablename__ = "phone_verifications"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    code = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class PasswordReset(Base):
    __tablename__ = "password_resets"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    token = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
