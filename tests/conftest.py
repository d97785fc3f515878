import os
import tempfile
import time
import uuid

# Configure the environment before any application module reads settings.
_tmpdir = tempfile.mkdtemp(prefix="estiloplus-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmpdir}/test.db"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["SUPABASE_URL"] = "https://project.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "anon-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_estiloplus"
os.environ["STRIPE_PUBLISHABLE_KEY"] = "pk_test_estiloplus"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_estiloplus"
os.environ["FRONTEND_URL"] = "https://estiloplus.test"

import httpx
import pytest
from jose import jwt

import tryon
from db import Base, async_session_maker, engine
from models import Role, User
from server import app

JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]
FAKE_IMAGE = b"\x89PNG fake composite"


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session():
    async with async_session_maker() as s:
        yield s


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def make_token(user_id, email=None, secret=JWT_SECRET, expires_in=3600):
    claims = {
        "sub": str(user_id),
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def token():
    return make_token


@pytest.fixture
def auth():
    """Builds bearer headers for an account (or a bare id)."""
    def _auth(account, email=None):
        user_id = account.id if isinstance(account, User) else account
        return {"Authorization": f"Bearer {make_token(user_id, email)}"}
    return _auth


@pytest.fixture
def make_account():
    async def _make(role=Role.CLIENT, credits=20, name="Maria Silva", email=None):
        async with async_session_maker() as s:
            account = User(
                id=uuid.uuid4(),
                email=email or f"{uuid.uuid4().hex[:10]}@example.com",
                name=name,
                role=Role(role).value,
                credits=credits,
            )
            s.add(account)
            await s.commit()
            return account
    return _make


@pytest.fixture
def balance_of():
    async def _balance(user_id):
        async with async_session_maker() as s:
            account = await s.get(User, user_id)
            return account.credits
    return _balance


@pytest.fixture
def fake_providers(monkeypatch):
    """Replaces the composition provider and the object store with in-memory fakes."""
    calls = {"compose": [], "upload": []}

    async def fake_compose(user_image_url, clothing_image_url, instruction):
        calls["compose"].append((user_image_url, clothing_image_url, instruction))
        return FAKE_IMAGE

    async def fake_upload(data, folder, public_id):
        calls["upload"].append((data, folder, public_id))
        return f"https://res.cloudinary.com/demo/image/upload/{folder}/{public_id}-{len(calls['upload'])}.png"

    monkeypatch.setattr(tryon, "compose_try_on", fake_compose)
    monkeypatch.setattr(tryon, "upload_image", fake_upload)
    return calls
