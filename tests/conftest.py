import os
import pathlib
import sys

import pytest

# Ensure project root on sys.path for application imports
PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Environment needed before importing application modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402

from controllers.email import get_mailer  # noqa: E402
from controllers.sms import get_sms_sender  # noqa: E402
from controllers.social import SocialIdentity, get_social_verifiers  # noqa: E402
from core.config import Settings  # noqa: E402
from core.errors import BadRequest  # noqa: E402
from core.tokens import TokenCodec  # noqa: E402
from models.social_login import SocialProvider  # noqa: E402

DEFAULT_PASSWORD = "Abcd1234"


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, dict]] = []

    async def send(self, to_address: str, template_name: str, template_data: dict) -> bool:
        if self.fail:
            raise RuntimeError("mail provider down")
        self.sent.append((to_address, template_name, template_data))
        return True

    def last(self, template_name: str, to_address: str | None = None) -> dict:
        for address, name, data in reversed(self.sent):
            if name == template_name and (to_address is None or address == to_address):
                return data
        raise AssertionError(f"no {template_name} mail sent")


class FakeSms:
    def __init__(self):
        self.codes: dict[str, str] = {}

    async def send(self, to_phone_number: str, message: str) -> bool:
        return True

    async def send_verification_code(self, to_phone_number: str, code: str) -> bool:
        self.codes[to_phone_number] = code
        return True


class FakeVerifier:
    def __init__(self, provider: SocialProvider):
        self.provider = provider
        self.identities: dict[str, SocialIdentity] = {}

    def add(self, token: str, email: str, email_verified: bool = True, **fields):
        self.identities[token] = SocialIdentity(
            provider=self.provider,
            provider_id=f"{self.provider.value.lower()}-{token}",
            email=email,
            email_verified=email_verified,
            **fields,
        )

    async def verify(self, provider_token: str) -> SocialIdentity:
        if provider_token not in self.identities:
            raise BadRequest(f"Failed to verify {self.provider.value} token")
        return self.identities[provider_token]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'test_db.sqlite'}",
    )


@pytest.fixture
def codec(settings):
    return TokenCodec(settings)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def verifiers():
    return {provider: FakeVerifier(provider) for provider in SocialProvider}


@pytest.fixture
def app(settings, mailer, sms, verifiers):
    from main import create_app

    fastapi_app = create_app(settings)
    fastapi_app.dependency_overrides[get_mailer] = lambda: mailer
    fastapi_app.dependency_overrides[get_sms_sender] = lambda: sms
    fastapi_app.dependency_overrides[get_social_verifiers] = lambda: verifiers
    return fastapi_app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app, client):
    session = app.state.db.session()
    try:
        yield session
    finally:
        session.close()


#########################
# Helper functions
#########################


def register(client, email="alice@example.com", password=DEFAULT_PASSWORD, **extra):
    payload = {
        "first_name": "Alice",
        "last_name": "Traveler",
        "email": email,
        "password": password,
        **extra,
    }
    return client.post("/api/v1/auth/register", json=payload)


def login(client, email="alice@example.com", password=DEFAULT_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def tokens_of(response) -> tuple[str, str]:
    data = response.json()["data"]
    return data["accessToken"], data["refreshToken"]
