import re
from datetime import date

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from models.social_login import SocialProvider
from models.user import Role


def _check_password_strength(value: str) -> str:
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    return value


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class AuthenticatedModel(BaseModel):
    """Body of a protected route; may also carry accessToken / refreshToken."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class RegisterRequest(StrictModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    phone_number: str | None = Field(default=None, min_length=10, max_length=20)
    password: str = Field(min_length=8, max_length=100)
    role: Role = Role.USER
    business_name: str | None = Field(default=None, min_length=2, max_length=100)
    date_of_birth: date | None = None
    address: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def role_shape(self):
        if self.role is Role.ADMIN:
            raise ValueError("Role must be one of: USER, SERVICE_PROVIDER, TRAVEL_AGENCY")
        if self.role in (Role.SERVICE_PROVIDER, Role.TRAVEL_AGENCY) and not self.business_name:
            raise ValueError(f"business_name is required for role {self.role.value}")
        return self


class LoginRequest(StrictModel):
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, min_length=10)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value

    @model_validator(mode="after")
    def identifier_present(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number must be provided")
        return self


class ForgotPasswordRequest(StrictModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class ResetPasswordRequest(StrictModel):
    token: str
    password: str = Field(min_length=8, max_length=100)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class VerifyEmailRequest(StrictModel):
    token: str


class VerifyPhoneRequest(AuthenticatedModel):
    code: str = Field(min_length=6, max_length=6)


class SocialLoginRequest(StrictModel):
    provider: SocialProvider
    token: str
    first_name: str | None = None
    last_name: str | None = None


class RoleUpdateRequest(AuthenticatedModel):
    role: Role
    business_name: str | None = Field(default=None, min_length=2, max_length=100)
