"""Exchange a provider-issued token for a verified identity.

Each verifier states whether the provider vouches for the email address through
``SocialIdentity.email_verified``; the auth service trusts nothing else.
"""

from dataclasses import dataclass

import httpx
from fastapi import Request
from jose import JWTError, jwt

from core.config import Settings
from core.errors import BadRequest
from models.social_login import SocialProvider
from utils.state import State

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
FACEBOOK_ME_URL = "https://graph.facebook.com/me"
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUER = "https://appleid.apple.com"


@dataclass(frozen=True)
class SocialIdentity:
    provider: SocialProvider
    provider_id: str
    email: str
    email_verified: bool
    first_name: str | None = None
    last_name: str | None = None
    picture: str | None = None


def _truthy(value) -> bool:
    return value is True or str(value).lower() == "true"


async def _get_json(url: str, provider: SocialProvider, **kwargs) -> dict:
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(url, **kwargs)
    except httpx.HTTPError as e:
        State.log_failure(f"contacting {provider.value}", e)
        raise BadRequest(f"Failed to verify {provider.value} token") from e
    if response.status_code != 200:
        raise BadRequest(f"Failed to verify {provider.value} token")
    return response.json()


class GoogleVerifier:
    provider = SocialProvider.GOOGLE

    def __init__(self, client_id: str | None):
        self.client_id = client_id

    async def verify(self, provider_token: str) -> SocialIdentity:
        info = await _get_json(
            GOOGLE_TOKENINFO_URL, self.provider, params={"id_token": provider_token}
        )
        if self.client_id and info.get("aud") != self.client_id:
            raise BadRequest("Google token was issued for another client")
        if not info.get("email"):
            raise BadRequest("Email not provided by Google")
        return SocialIdentity(
            provider=self.provider,
            provider_id=info["sub"],
            email=info["email"].lower(),
            email_verified=_truthy(info.get("email_verified")),
            first_name=info.get("given_name"),
            last_name=info.get("family_name"),
            picture=info.get("picture"),
        )


class FacebookVerifier:
    provider = SocialProvider.FACEBOOK

    async def verify(self, provider_token: str) -> SocialIdentity:
        info = await _get_json(
            FACEBOOK_ME_URL,
            self.provider,
            params={
                "fields": "id,email,first_name,last_name,picture",
                "access_token": provider_token,
            },
        )
        if not info.get("email"):
            raise BadRequest("Email not provided by Facebook")
        picture = (info.get("picture") or {}).get("data", {}).get("url")
        # Graph only returns addresses the account holder has confirmed
        return SocialIdentity(
            provider=self.provider,
            provider_id=info["id"],
            email=info["email"].lower(),
            email_verified=True,
            first_name=info.get("first_name"),
            last_name=info.get("last_name"),
            picture=picture,
        )


class AppleVerifier:
    provider = SocialProvider.APPLE

    def __init__(self, client_id: str | None):
        self.client_id = client_id

    async def verify(self, provider_token: str) -> SocialIdentity:
        keys = await _get_json(APPLE_KEYS_URL, self.provider)
        try:
            claims = jwt.decode(
                provider_token,
                keys,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=APPLE_ISSUER,
                options={"verify_aud": self.client_id is not None},
            )
        except JWTError as e:
            raise BadRequest("Failed to verify APPLE token") from e
        if not claims.get("email"):
            raise BadRequest("Email not provided by Apple")
        return SocialIdentity(
            provider=self.provider,
            provider_id=claims["sub"],
            email=claims["email"].lower(),
            email_verified=_truthy(claims.get("email_verified")),
        )


def build_verifiers(settings: Settings) -> dict:
    return {
        SocialProvider.GOOGLE: GoogleVerifier(settings.google_client_id),
        SocialProvider.FACEBOOK: FacebookVerifier(),
        SocialProvider.APPLE: AppleVerifier(settings.apple_client_id),
    }


def get_social_verifiers(request: Request) -> dict:
    return build_verifiers(request.app.state.settings)
