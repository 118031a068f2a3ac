from uuid import uuid4

from fastapi import Depends, Request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from controllers.email import Mailer, get_mailer
from controllers.sms import SmsSender, get_sms_sender
from controllers.social import SocialIdentity, get_social_verifiers
from core.auth import SessionAuthenticator
from core.config import Settings
from core.errors import (
    AppError,
    BadRequest,
    Conflict,
    Internal,
    NotFound,
    Unauthenticated,
    field_error,
)
from core.sessions import SessionStore
from core.tokens import TokenCodec, TokenPair, TokenPurpose, auth_payload
from database.database import get_db
from models.social_login import SocialLogin
from models.user import Profile, Role, ServiceProvider, TravelAgency, User
from models.verification import EmailVerification, PasswordReset, PhoneVerification
from schema.auth import (
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SocialLoginRequest,
)
from utils.clock import isonow, utcnow
from utils.state import State
from utils.token import (
    dummy_password_hash,
    generate_phone_code,
    generate_unusable_password_hash,
    get_hashed_password,
    verify_password,
)

FORGOT_PASSWORD_MESSAGE = (
    "If a user with that email exists, a password reset link has been sent"
)


class AuthService:
    """Registration, login, logout, password reset and contact verification.

    Every public method re-raises application errors unchanged and turns anything
    else into a generic ``Internal`` error after logging it.
    """

    def __init__(
        self,
        db: Session,
        codec: TokenCodec,
        settings: Settings,
        mailer: Mailer,
        sms: SmsSender,
        verifiers: dict | None = None,
    ):
        self.db = db
        self.codec = codec
        self.settings = settings
        self.mailer = mailer
        self.sms = sms
        self.verifiers = verifiers or {}
        self.sessions = SessionStore(db)

    def _start_session(self, user: User) -> TokenPair:
        user_session = self.sessions.create(user.user_id)
        pair = self.codec.mint_pair(auth_payload(user, user_session.session_id))
        self.sessions.record_refresh_token(
            user.user_id,
            user_session.session_id,
            pair.refresh_token,
            self.codec.refresh_ttl,
        )
        return pair

    @staticmethod
    def _auth_result(user: User, pair: TokenPair) -> dict:
        return {
            "user": user.summary(),
            "accessToken": pair.access_token,
            "refreshToken": pair.refresh_token,
        }

    def _upsert(self, model, user_id: str, **values):
        record = self.db.get(model, user_id)
        if record is None:
            record = model(user_id=user_id)
            self.db.add(record)
        for key, value in values.items():
            setattr(record, key, value)
        return record

    def _email_verification_token(self, user_id: str) -> str:
        return self.codec.sign(
            {"id": user_id},
            TokenPurpose.EMAIL_VERIFICATION,
            self.settings.email_verification_ttl,
        )

    def _fail(self, action: str, error: Exception) -> None:
        self.db.rollback()
        State.log_failure(action, error)

    async def _send_verification_email(self, email: str, token: str) -> bool:
        return await self.mailer.send(
            email,
            "verify_email.html",
            {
                "token": token,
                "expires_hours": self.settings.email_verification_expire_hours,
            },
        )

    async def register(self, req: RegisterRequest) -> dict:
        try:
            conditions = [User.email == req.email]
            if req.phone_number:
                conditions.append(User.phone_number == req.phone_number)
            existing = self.db.query(User).filter(or_(*conditions)).first()
            if existing:
                if existing.email == req.email:
                    raise Conflict(
                        "Email already in use",
                        errors=field_error("email", "Email already in use"),
                    )
                raise Conflict(
                    "Phone number already in use",
                    errors=field_error("phone_number", "Phone number already in use"),
                )

            now = isonow()
            user = User(
                user_id=str(uuid4()),
                first_name=req.first_name,
                last_name=req.last_name,
                email=req.email,
                phone_number=req.phone_number,
                password_hash=get_hashed_password(req.password),
                role=req.role.value,
                email_verified=False,
                phone_verified=False,
                date_of_birth=req.date_of_birth.isoformat() if req.date_of_birth else None,
                address=req.address,
                time_created=now,
                time_updated=now,
            )
            user.profile = Profile(bio="", theme="light", language="en")
            if req.role is Role.SERVICE_PROVIDER:
                user.service_provider = ServiceProvider(
                    business_name=req.business_name, time_created=now
                )
            elif req.role is Role.TRAVEL_AGENCY:
                user.travel_agency = TravelAgency(
                    agency_name=req.business_name, time_created=now
                )
            self.db.add(user)
            self.db.flush()

            email_token = self._email_verification_token(user.user_id)
            self.db.add(
                EmailVerification(
                    user_id=user.user_id,
                    token=email_token,
                    expires_at=utcnow() + self.settings.email_verification_ttl,
                )
            )
            phone_code = None
            if req.phone_number:
                phone_code = generate_phone_code()
                self.db.add(
                    PhoneVerification(
                        user_id=user.user_id,
                        code=phone_code,
                        expires_at=utcnow() + self.settings.phone_verification_ttl,
                    )
                )

            pair = self._start_session(user)
            self.db.commit()
            self.db.refresh(user)
        except AppError as e:
            self._fail("registering user", e)
            raise
        except IntegrityError as e:
            self._fail("registering user", e)
            raise Conflict("Email or phone number already in use") from e
        except Exception as e:
            self._fail("registering user", e)
            raise Internal("Failed to register user") from e

        # Delivery is retriable on its own and never undoes the registration
        try:
            await self._send_verification_email(user.email, email_token)
            if phone_code:
                await self.sms.send_verification_code(user.phone_number, phone_code)
        except Exception as e:
            State.log_failure(f"delivering verification for user {user.user_id}", e)

        return self._auth_result(user, pair)

    async def login(self, req: LoginRequest) -> dict:
        try:
            conditions = []
            if req.email:
                conditions.append(User.email == req.email)
            if req.phone_number:
                conditions.append(User.phone_number == req.phone_number)
            user = self.db.query(User).filter(or_(*conditions)).first()

            if not user:
                verify_password(req.password, dummy_password_hash())
                raise Unauthenticated("Invalid credentials")
            if not verify_password(req.password, user.password_hash):
                raise Unauthenticated("Invalid credentials")

            pair = self._start_session(user)
            self.db.commit()
            return self._auth_result(user, pair)
        except AppError as e:
            self._fail("logging in", e)
            raise
        except Exception as e:
            self._fail("logging in", e)
            raise Internal("Failed to login") from e

    async def social_login(self, req: SocialLoginRequest) -> dict:
        try:
            verifier = self.verifiers.get(req.provider)
            if verifier is None:
                raise BadRequest(f"Unsupported provider {req.provider.value}")
            identity: SocialIdentity = await verifier.verify(req.token)

            user = self.db.query(User).filter(User.email == identity.email).first()
            if user is None:
                user = self._create_social_user(identity, req)
            else:
                self._link_social_login(user, identity)

            pair = self._start_session(user)
            self.db.commit()
            self.db.refresh(user)
            return self._auth_result(user, pair)
        except AppError as e:
            self._fail(f"logging in with {req.provider.value}", e)
            raise
        except Exception as e:
            self._fail(f"logging in with {req.provider.value}", e)
            raise Internal(f"Failed to login with {req.provider.value.title()}") from e

    def _create_social_user(
        self, identity: SocialIdentity, req: SocialLoginRequest
    ) -> User:
        now = isonow()
        provider_name = identity.provider.value.title()
        user = User(
            user_id=str(uuid4()),
            email=identity.email,
            first_name=identity.first_name or req.first_name or provider_name,
            last_name=identity.last_name or req.last_name or "User",
            password_hash=generate_unusable_password_hash(),
            role=Role.USER.value,
            email_verified=identity.email_verified,
            phone_verified=False,
            time_created=now,
            time_updated=now,
        )
        user.profile = Profile(
            bio="", theme="light", language="en", profile_picture=identity.picture
        )
        user.social_logins.append(self._social_login_row(user.user_id, identity))
        self.db.add(user)
        self.db.flush()
        return user

    def _link_social_login(self, user: User, identity: SocialIdentity) -> None:
        link = (
            self.db.query(SocialLogin)
            .filter_by(user_id=user.user_id, provider=identity.provider.value)
            .first()
        )
        if link:
            return
        # Only a provider that vouches for the address may attach to an existing account
        if not identity.email_verified:
            raise BadRequest(
                f"{identity.provider.value.title()} has not verified this email address"
            )
        self.db.add(self._social_login_row(user.user_id, identity))
        self.db.flush()

    @staticmethod
    def _social_login_row(user_id: str, identity: SocialIdentity) -> SocialLogin:
        return SocialLogin(
            social_login_id=str(uuid4()),
            user_id=user_id,
            provider=identity.provider.value,
            provider_id=identity.provider_id,
            time_created=isonow(),
        )

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        try:
            _, pair = SessionAuthenticator(self.db, self.codec).refresh(refresh_token)
            return pair
        except AppError as e:
            self._fail("refreshing tokens", e)
            raise
        except Exception as e:
            self._fail("refreshing tokens", e)
            raise Internal("Failed to refresh authentication tokens") from e

    async def logout(
        self,
        user_id: str,
        session_id: str | None = None,
        all_devices: bool = False,
        except_session_id: str | None = None,
    ) -> dict:
        try:
            if all_devices:
                self.sessions.revoke_all(user_id)
            elif session_id:
                self.sessions.revoke(user_id, session_id)
            elif except_session_id:
                self.sessions.revoke_others(user_id, except_session_id)
            else:
                raise BadRequest("No session given to log out")
            return {"message": "Logged out successfully"}
        except AppError as e:
            self._fail("logging out", e)
            raise
        except Exception as e:
            self._fail("logging out", e)
            raise Internal("Failed to logout") from e

    async def logout_current_session(self, user_id: str, session_id: str) -> dict:
        return await self.logout(user_id, session_id=session_id)

    async def logout_other_devices(self, user_id: str, current_session_id: str) -> dict:
        return await self.logout(user_id, except_session_id=current_session_id)

    async def logout_all_devices(self, user_id: str) -> dict:
        return await self.logout(user_id, all_devices=True)

    async def forgot_password(self, email: str) -> dict:
        try:
            user = self.db.query(User).filter(User.email == email).first()
            if not user:
                return {"message": FORGOT_PASSWORD_MESSAGE}

            reset_token = self.codec.sign(
                {"id": user.user_id},
                TokenPurpose.RESET_PASSWORD,
                self.settings.password_reset_ttl,
            )
            self._upsert(
                PasswordReset,
                user.user_id,
                token=reset_token,
                expires_at=utcnow() + self.settings.password_reset_ttl,
            )
            self.db.commit()
        except AppError as e:
            self._fail("processing forgot password", e)
            raise
        except Exception as e:
            self._fail("processing forgot password", e)
            raise Internal("Failed to process forgot password request") from e

        await self.mailer.send(user.email, "reset_password.html", {"token": reset_token})
        return {"message": FORGOT_PASSWORD_MESSAGE}

    async def reset_password(self, req: ResetPasswordRequest) -> dict:
        invalid = BadRequest(
            "Invalid or expired password reset token",
            errors=field_error("token", "Invalid or expired password reset token"),
        )
        try:
            try:
                claims = self.codec.verify(req.token, TokenPurpose.RESET_PASSWORD)
            except AppError as e:
                raise invalid from e
            user_id = claims.get("id")

            record = (
                self.db.query(PasswordReset)
                .filter(
                    PasswordReset.user_id == user_id,
                    PasswordReset.token == req.token,
                    PasswordReset.expires_at > utcnow(),
                )
                .first()
            )
            if not record:
                raise invalid

            user = self.db.get(User, user_id)
            if not user:
                raise NotFound("User not found")
            user.password_hash = get_hashed_password(req.password)
            user.time_updated = isonow()
            self.db.delete(record)
            # Existing access tokens live out their lifetime; refresh is gone everywhere
            self.sessions.revoke_refresh_tokens(user_id)
            self.db.commit()
            return {"message": "Password reset successful"}
        except AppError as e:
            self._fail("resetting password", e)
            raise
        except Exception as e:
            self._fail("resetting password", e)
            raise Internal("Failed to reset password") from e

    async def verify_email(self, token: str) -> dict:
        invalid = BadRequest(
            "Invalid or expired email verification token",
            errors=field_error("token", "Invalid or expired email verification token"),
        )
        try:
            try:
                self.codec.verify(token, TokenPurpose.EMAIL_VERIFICATION)
            except AppError as e:
                raise invalid from e

            record = (
                self.db.query(EmailVerification)
                .filter(
                    EmailVerification.token == token,
                    EmailVerification.expires_at > utcnow(),
                )
                .first()
            )
            if not record:
                raise invalid

            user = self.db.get(User, record.user_id)
            if not user:
                raise NotFound("User not found")
            user.email_verified = True
            user.time_updated = isonow()
            self.db.delete(record)
            self.db.commit()
            return {"message": "Email verified successfully"}
        except AppError as e:
            self._fail("verifying email", e)
            raise
        except Exception as e:
            self._fail("verifying email", e)
            raise Internal("Failed to verify email") from e

    async def verify_phone(self, code: str, user_id: str) -> dict:
        try:
            record = (
                self.db.query(PhoneVerification)
                .filter(
                    PhoneVerification.user_id == user_id,
                    PhoneVerification.code == code,
                    PhoneVerification.expires_at > utcnow(),
                )
                .first()
            )
            if not record:
                raise BadRequest(
                    "Invalid or expired phone verification code",
                    errors=field_error("code", "Invalid or expired phone verification code"),
                )

            user = self.db.get(User, user_id)
            if not user:
                raise NotFound("User not found")
            user.phone_verified = True
            user.time_updated = isonow()
            self.db.delete(record)
            self.db.commit()
            return {"message": "Phone verified successfully"}
        except AppError as e:
            self._fail("verifying phone", e)
            raise
        except Exception as e:
            self._fail("verifying phone", e)
            raise Internal("Failed to verify phone") from e

    async def resend_email_verification(self, user_id: str) -> dict:
        try:
            user = self.db.get(User, user_id)
            if not user:
                raise NotFound("User not found")
            if user.email_verified:
                raise BadRequest("Email already verified")

            token = self._email_verification_token(user_id)
            self._upsert(
                EmailVerification,
                user_id,
                token=token,
                expires_at=utcnow() + self.settings.email_verification_ttl,
            )
            self.db.commit()
        except AppError as e:
            self._fail("resending verification email", e)
            raise
        except Exception as e:
            self._fail("resending verification email", e)
            raise Internal("Failed to resend verification email") from e

        await self._send_verification_email(user.email, token)
        return {"message": "Verification email sent"}

    async def resend_phone_verification(self, user_id: str) -> dict:
        try:
            user = self.db.get(User, user_id)
            if not user:
                raise NotFound("User not found")
            if not user.phone_number:
                raise NotFound("Phone number not found")
            if user.phone_verified:
                raise BadRequest("Phone already verified")

            code = generate_phone_code()
            self._upsert(
                PhoneVerification,
                user_id,
                code=code,
                expires_at=utcnow() + self.settings.phone_verification_ttl,
            )
            self.db.commit()
        except AppError as e:
            self._fail("resending verification SMS", e)
            raise
        except Exception as e:
            self._fail("resending verification SMS", e)
            raise Internal("Failed to resend verification SMS") from e

        await self.sms.send_verification_code(user.phone_number, code)
        return {"message": "Verification SMS sent"}


def get_auth_service(
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    sms: SmsSender = Depends(get_sms_sender),
    verifiers: dict = Depends(get_social_verifiers),
) -> AuthService:
    return AuthService(
        db=db,
        codec=request.app.state.token_codec,
        settings=request.app.state.settings,
        mailer=mailer,
        sms=sms,
        verifiers=verifiers,
    )


