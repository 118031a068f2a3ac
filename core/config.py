import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv(".env")


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once from the environment."""

    environment: str = "development"
    database_url: str = "sqlite:///./trippz.db"

    jwt_algorithm: str = "HS256"
    jwt_secret: str = "dev-access-secret"
    jwt_refresh_secret: str = "dev-refresh-secret"
    jwt_reset_password_secret: str = "dev-reset-password-secret"
    jwt_email_verification_secret: str = "dev-email-verification-secret"
    jwt_phone_verification_secret: str = "dev-phone-verification-secret"

    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 90
    password_reset_expire_minutes: int = 60
    email_verification_expire_hours: int = 24
    phone_verification_expire_minutes: int = 15

    use_cookie_auth: bool = False

    resend_api_key: str | None = None
    mail_from: str = "Trippz <onboarding@resend.dev>"
    frontend_url: str = "http://localhost:3000"
    brevo_api_key: str | None = None
    sms_sender_name: str = "Trippz"

    google_client_id: str | None = None
    apple_client_id: str | None = None

    logfire_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./trippz.db"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-access-secret"),
            jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret"),
            jwt_reset_password_secret=os.getenv(
                "JWT_RESET_PASSWORD_SECRET", "dev-reset-password-secret"
            ),
            jwt_email_verification_secret=os.getenv(
                "JWT_EMAIL_VERIFICATION_SECRET", "dev-email-verification-secret"
            ),
            jwt_phone_verification_secret=os.getenv(
                "JWT_PHONE_VERIFICATION_SECRET", "dev-phone-verification-secret"
            ),
            access_token_expire_minutes=int(
                os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60")
            ),
            refresh_token_expire_days=int(
                os.getenv("JWT_REFRESH_TOKEN_EXPIRE_DAYS", "90")
            ),
            password_reset_expire_minutes=int(
                os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60")
            ),
            email_verification_expire_hours=int(
                os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24")
            ),
            phone_verification_expire_minutes=int(
                os.getenv("PHONE_VERIFICATION_EXPIRE_MINUTES", "15")
            ),
            use_cookie_auth=_parse_bool(os.getenv("USE_COOKIE_AUTH"), False),
            resend_api_key=os.getenv("RESEND_API_KEY"),
            mail_from=os.getenv("MAIL_FROM", "Trippz <onboarding@resend.dev>"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            brevo_api_key=os.getenv("BREVO_API_KEY"),
            sms_sender_name=os.getenv("SMS_SENDER_NAME", "Trippz"),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            apple_client_id=os.getenv("APPLE_CLIENT_ID"),
            logfire_token=os.getenv("LOGFIRE_TOKEN"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    @property
    def password_reset_ttl(self) -> timedelta:
        return timedelta(minutes=self.password_reset_expire_minutes)

    @property
    def email_verification_ttl(self) -> timedelta:
        return timedelta(hours=self.email_verification_expire_hours)

    @property
    def phone_verification_ttl(self) -> timedelta:
        return timedelta(minutes=self.phone_verification_expire_minutes)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
