from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Boolean, Column, ForeignKey, String
from sqlalchemy.orm import relationship

from core.errors import Internal
from database.database import Base


class Role(str, Enum):
    USER = "USER"
    SERVICE_PROVIDER = "SERVICE_PROVIDER"
    TRAVEL_AGENCY = "TRAVEL_AGENCY"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, nullable=False, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, unique=True, index=True)
    phone_number = Column(String, nullable=True, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.USER.value)
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    date_of_birth = Column(String, nullable=True)
    address = Column(String, nullable=True)
    time_created = Column(String, nullable=True)
    time_updated = Column(String, nullable=True)

    profile = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    service_provider = relationship(
        "ServiceProvider",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    travel_agency = relationship(
        "TravelAgency",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    sessions = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan"
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )
    email_verification = relationship(
        "EmailVerification", uselist=False, cascade="all, delete-orphan"
    )
    phone_verification = relationship(
        "PhoneVerification", uselist=False, cascade="all, delete-orphan"
    )
    password_reset = relationship(
        "PasswordReset", uselist=False, cascade="all, delete-orphan"
    )
    social_logins = relationship(
        "SocialLogin", back_populates="user", cascade="all, delete-orphan"
    )

    def account(self) -> "Account":
        """Role-tagged view of the user; provider and agency carry their profile."""
        role = Role(self.role)
        if role is Role.ADMIN:
            return AdminAccount(self.user_id)
        if role is Role.SERVICE_PROVIDER:
            if self.service_provider is None:
                raise Internal(f"Service provider {self.user_id} has no business profile")
            return ServiceProviderAccount(self.user_id, self.service_provider)
        if role is Role.TRAVEL_AGENCY:
            if self.travel_agency is None:
                raise Internal(f"Travel agency {self.user_id} has no agency profile")
            return TravelAgencyAccount(self.user_id, self.travel_agency)
        return PlainAccount(self.user_id)

    def summary(self) -> dict:
        return {
            "id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "role": self.role,
            "email_verified": self.email_verified,
            "phone_verified": self.phone_verified,
        }


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    bio = Column(String, nullable=False, default="")
    theme = Column(String, nullable=False, default="light")
    language = Column(String, nullable=False, default="en")
    profile_picture = Column(String, nullable=True)

    user = relationship("User", back_populates="profile")


class ServiceProvider(Base):
    __tablename__ = "service_providers"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    business_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    time_created = Column(String, nullable=True)

    user = relationship("User", back_populates="service_provider")


class TravelAgency(Base):
    __tablename__ = "travel_agencies"

    user_id = Column(
        String, ForeignKey(User.user_id, ondelete="CASCADE"), primary_key=True
    )
    agency_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    time_created = Column(String, nullable=True)

    user = relationship("User", back_populates="travel_agency")


@dataclass(frozen=True)
class PlainAccount:
    user_id: str


@dataclass(frozen=True)
class AdminAccount:
    user_id: str


@dataclass(frozen=True)
class ServiceProviderAccount:
    user_id: str
    profile: ServiceProvider


@dataclass(frozen=True)
class TravelAgencyAccount:
    user_id: str
    profile: TravelAgency


Account = PlainAccount | AdminAccount | ServiceProviderAccount | TravelAgencyAccount
