"""Signed, expiring, purpose-typed tokens.

Every purpose is signed with its own secret and carries its purpose in the
``type`` claim, so a token minted for one use is rejected everywhere else.
Expiry is checked here rather than by the JWT library so callers (and tests)
can supply the clock.
"""

import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt

from core.config import Settings
from core.errors import ExpiredToken, InvalidToken


class TokenPurpose(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET_PASSWORD = "reset_password"
    EMAIL_VERIFICATION = "email_verification"
    PHONE_VERIFICATION = "phone_verification"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenCodec:
    def __init__(self, settings: Settings):
        self._algorithm = settings.jwt_algorithm
        self._secrets = {
            TokenPurpose.ACCESS: settings.jwt_secret,
            TokenPurpose.REFRESH: settings.jwt_refresh_secret,
            TokenPurpose.RESET_PASSWORD: settings.jwt_reset_password_secret,
            TokenPurpose.EMAIL_VERIFICATION: settings.jwt_email_verification_secret,
            TokenPurpose.PHONE_VERIFICATION: settings.jwt_phone_verification_secret,
        }
        self._access_ttl = settings.access_token_ttl
        self._refresh_ttl = settings.refresh_token_ttl

    def sign(
        self,
        payload: dict[str, Any],
        purpose: TokenPurpose,
        ttl: timedelta,
        now: float | None = None,
    ) -> str:
        issued_at = time.time() if now is None else now
        claims = {
            **payload,
            "type": purpose.value,
            "iat": issued_at,
            "exp": issued_at + ttl.total_seconds(),
            "jti": uuid4().hex,
        }
        return jwt.encode(claims, self._secrets[purpose], algorithm=self._algorithm)

    def verify(
        self, token: str, purpose: TokenPurpose, now: float | None = None
    ) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self._secrets[purpose],
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidToken() from e

        if claims.get("type") != purpose.value:
            raise InvalidToken("Invalid token type")
        expires_at = claims.get("exp")
        if not isinstance(expires_at, (int, float)):
            raise InvalidToken()
        current = time.time() if now is None else now
        if current >= expires_at:
            raise ExpiredToken()
        return claims

    def mint_pair(self, payload: dict[str, Any], now: float | None = None) -> TokenPair:
        return TokenPair(
            access_token=self.sign(payload, TokenPurpose.ACCESS, self._access_ttl, now),
            refresh_token=self.sign(
                payload, TokenPurpose.REFRESH, self._refresh_ttl, now
            ),
        )

    @property
    def access_ttl(self) -> timedelta:
        return self._access_ttl

    @property
    def refresh_ttl(self) -> timedelta:
        return self._refresh_ttl


def auth_payload(user, session_id: str) -> dict[str, Any]:
    return {
        "id": user.user_id,
        "role": user.role,
        "email": user.email,
        "first_name": user.first_name,
        "session_id": session_id,
    }
