"""Session-aware request authentication.

``protect`` verifies the access token, checks the session it names and, when the
access token has merely expired, mints a fresh pair from a still-valid refresh
token. ``optional_auth`` attaches an identity when it can and never fails.
``restrict_to`` gates on role after ``protect``.
"""

from dataclasses import dataclass

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from core.config import Settings
from core.errors import AppError, ExpiredToken, Forbidden, Unauthenticated
from core.sessions import SessionStore
from core.tokens import TokenCodec, TokenPair, TokenPurpose, auth_payload
from database.database import get_db
from models.user import Role, User
from utils.state import State

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"
ACCESS_TOKEN_HEADER = "X-Access-Token"
REFRESH_TOKEN_HEADER = "X-Refresh-Token"


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: str
    email: str
    first_name: str
    session_id: str


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


class SessionAuthenticator:
    """Token + session checks shared by the dependencies and the refresh endpoint."""

    def __init__(self, db: Session, codec: TokenCodec):
        self.db = db
        self.codec = codec
        self.sessions = SessionStore(db)

    def _resolve(self, claims: dict) -> CurrentUser:
        user_id = claims.get("id")
        user_session = self.sessions.validate(user_id, claims.get("session_id"))
        user = self.db.query(User).filter(User.user_id == user_id).first()
        if not user:
            raise Unauthenticated("The user belonging to this token no longer exists.")
        return CurrentUser(
            user_id=user.user_id,
            role=user.role,
            email=user.email,
            first_name=user.first_name,
            session_id=user_session.session_id,
        )

    def authenticate_access(self, access_token: str) -> CurrentUser:
        claims = self.codec.verify(access_token, TokenPurpose.ACCESS)
        return self._resolve(claims)

    def refresh(self, refresh_token: str) -> tuple[CurrentUser, TokenPair]:
        claims = self.codec.verify(refresh_token, TokenPurpose.REFRESH)
        current = self._resolve(claims)
        if not self.sessions.has_refresh_grant(
            current.user_id, current.session_id, refresh_token
        ):
            raise Unauthenticated("Refresh token has been revoked")

        user = self.db.query(User).filter(User.user_id == current.user_id).first()
        pair = self.codec.mint_pair(auth_payload(user, current.session_id))
        self.sessions.record_refresh_token(
            current.user_id,
            current.session_id,
            pair.refresh_token,
            self.codec.refresh_ttl,
        )
        self.db.commit()
        return current, pair


def set_auth_cookies(
    response: Response, pair: TokenPair, settings: Settings, codec: TokenCodec
) -> None:
    for key, value, ttl in (
        (ACCESS_TOKEN_COOKIE, pair.access_token, codec.access_ttl),
        (REFRESH_TOKEN_COOKIE, pair.refresh_token, codec.refresh_ttl),
    ):
        response.set_cookie(
            key=key,
            value=value,
            max_age=int(ttl.total_seconds()),
            httponly=True,
            secure=settings.is_production,
            samesite="strict" if settings.is_production else "lax",
            path="/",
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=key,
            httponly=True,
            secure=settings.is_production,
            samesite="strict" if settings.is_production else "lax",
            path="/",
        )


async def _body_field(request: Request, name: str) -> str | None:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    value = body.get(name)
    return value if isinstance(value, str) and value else None


async def extract_access_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    parts = authorization.split(" ")
    if authorization.startswith("Bearer") and len(parts) > 1 and parts[1]:
        return parts[1]
    if request.cookies.get(ACCESS_TOKEN_COOKIE):
        return request.cookies[ACCESS_TOKEN_COOKIE]
    return await _body_field(request, "accessToken")


async def extract_refresh_token(request: Request) -> str | None:
    if request.cookies.get(REFRESH_TOKEN_COOKIE):
        return request.cookies[REFRESH_TOKEN_COOKIE]
    return await _body_field(request, "refreshToken")


class SessionAuth:
    def __init__(self, required: bool = True):
        self.required = required

    async def __call__(
        self,
        request: Request,
        response: Response,
        db: Session = Depends(get_db),
    ) -> CurrentUser | None:
        codec = get_token_codec(request)
        authenticator = SessionAuthenticator(db, codec)
        if self.required:
            current = await self._protect(request, response, authenticator)
        else:
            current = await self._optional(request, authenticator)
        request.state.current_user = current
        return current

    async def _protect(
        self, request: Request, response: Response, authenticator: SessionAuthenticator
    ) -> CurrentUser:
        access_token = await extract_access_token(request)
        refresh_token = await extract_refresh_token(request)
        if not access_token and not refresh_token:
            raise Unauthenticated("Authentication required. Please login.")

        try:
            if access_token:
                try:
                    return authenticator.authenticate_access(access_token)
                except ExpiredToken:
                    State.logger.info("Access token expired, attempting to refresh")

            if not refresh_token:
                raise Unauthenticated("Authentication failed. Please login again.")

            try:
                current, pair = authenticator.refresh(refresh_token)
            except AppError as e:
                State.logger.error(f"Refresh token validation error: {e.message}")
                raise Unauthenticated(
                    "Your session has expired. Please log in again."
                ) from e
        except AppError:
            raise
        except Exception as e:
            State.log_failure("authenticating request", e)
            raise Unauthenticated("Authentication failed") from e

        settings = get_app_settings(request)
        if settings.use_cookie_auth:
            set_auth_cookies(response, pair, settings, authenticator.codec)
        response.headers[ACCESS_TOKEN_HEADER] = pair.access_token
        response.headers[REFRESH_TOKEN_HEADER] = pair.refresh_token
        return current

    async def _optional(
        self, request: Request, authenticator: SessionAuthenticator
    ) -> CurrentUser | None:
        access_token = await extract_access_token(request)
        if not access_token:
            return None
        try:
            return authenticator.authenticate_access(access_token)
        except AppError as e:
            State.logger.debug(f"Optional auth token invalid: {e.message}")
            return None
        except Exception as e:
            authenticator.db.rollback()
            State.log_failure("checking optional authentication", e)
            return None


protect = SessionAuth()
optional_auth = SessionAuth(required=False)


def restrict_to(*roles: Role | str):
    allowed = {Role(role).value for role in roles}

    async def checker(request: Request, _: CurrentUser = Depends(protect)) -> CurrentUser:
        current = getattr(request.state, "current_user", None)
        if current is None:
            raise Unauthenticated("You are not logged in.")
        if current.role not in allowed:
            raise Forbidden("You do not have permission to perform this action.")
        return current

    return checker
