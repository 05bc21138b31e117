import copy
from typing import Any, Dict, List, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from ecoquest.config import Settings, get_settings
from ecoquest.dependencies.auth import identity_client
from ecoquest.main import app
from ecoquest.schemas.auth import AuthUser, Session
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.identity import IdentityClient, IdentityError

TOKEN_SECRET = "test-secret"
PASSWORD = "password123"


def make_token(user: AuthUser, serial: int = 0) -> str:
    claims = {
        "sub": user.id,
        "aud": "authenticated",
        "email": user.email,
        "user_metadata": user.user_metadata,
        "app_metadata": user.app_metadata,
        "serial": serial,
    }
    return jwt.encode(claims, TOKEN_SECRET, algorithm="HS256")


class FakeIdentity(IdentityClient):
    """In-memory stand-in for the supabase-backed identity client."""

    def __init__(self):
        super().__init__(supabase=None)
        self.users: Dict[str, AuthUser] = {}
        self.passwords: Dict[str, str] = {}
        self.sessions: Dict[str, Session] = {}
        self.codes: Dict[str, str] = {}
        self.tables: Dict[str, List[Dict[str, Any]]] = {"user_details": []}
        self.storage: Dict[str, bytes] = {}
        self.calls: List[str] = []
        self.failing: set = set()
        self._serial = 0

    # -------- Seeding helpers --------
    def add_user(self, user_id: str, email: str, metadata_role: Optional[str] = None, record: Optional[dict] = None):
        user = AuthUser(
            id=user_id,
            email=email,
            user_metadata={"role": metadata_role} if metadata_role else {},
        )
        self.users[email] = user
        self.passwords[email] = PASSWORD
        if record is not None:
            self.tables["user_details"].append({"auth_id": user_id, **record})
        return user

    def issue_session(self, email: str) -> Session:
        self._serial += 1
        user = self.users[email]
        session = Session(
            access_token=make_token(user, self._serial),
            refresh_token=f"refresh-{user.id}-{self._serial}",
            user=user,
        )
        self.sessions[session.access_token] = session
        return session

    def login_as(self, email: str) -> Session:
        self._session = self.issue_session(email)
        return self._session

    def _fail(self, name: str):
        self.calls.append(name)
        if name in self.failing:
            raise IdentityError(f"{name} failed")

    # -------- Auth --------
    async def get_user(self) -> Optional[AuthUser]:
        self.calls.append("get_user")
        return self._session.user if self._session else None

    async def restore_session(self, access_token: str, refresh_token: Optional[str] = None) -> Optional[Session]:
        self.calls.append("restore_session")
        self._session = self.sessions.get(access_token)
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        self._fail("sign_in_with_password")
        if self.passwords.get(email) != password:
            raise IdentityError("Invalid login credentials")
        return self.login_as(email)

    async def sign_out(self) -> None:
        self.calls.append("sign_out")
        if self._session:
            self.sessions.pop(self._session.access_token, None)
        self._session = None

    async def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None) -> Session:
        self._fail("exchange_code_for_session")
        if code not in self.codes:
            raise IdentityError("invalid flow state, no valid flow state found")
        return self.login_as(self.codes.pop(code))

    async def set_session(self, access_token: str, refresh_token: str) -> Session:
        self._fail("set_session")
        session = self.sessions.get(access_token)
        if not session:
            raise IdentityError("Invalid JWT")
        self._session = session
        return session

    # -------- Tables --------
    async def select(self, table, columns="*", eq=None, neq=None, limit=None):
        self._fail(f"select:{table}")
        rows = [
            row for row in self.tables.get(table, [])
            if all(row.get(k) == v for k, v in (eq or {}).items())
            and all(row.get(k) != v for k, v in (neq or {}).items())
        ]
        if limit:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update(self, table, values, eq):
        self._fail(f"update:{table}")
        updated = []
        for row in self.tables.get(table, []):
            if all(row.get(k) == v for k, v in eq.items()):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    # -------- Storage --------
    async def upload(self, bucket, path, data, content_type, upsert=True):
        self._fail("upload")
        self.storage[f"{bucket}/{path}"] = data

    async def get_public_url(self, bucket, path):
        self._fail("get_public_url")
        return f"https://storage.example.test/{bucket}/{path}"


@pytest.fixture
def identity():
    fake = FakeIdentity()
    fake.add_user(
        "auth-student",
        "student@example.com",
        metadata_role="student",
        record={
            "user_id": "u-student",
            "username": "oldname",
            "name": "sam green",
            "bio": "Likes trees",
            "profile_picture": None,
            "points": 120,
            "quest_completed": 4,
            "total_points_earned": 150,
            "total_points_donated": 30,
            "created_at": "2025-01-05T10:00:00+00:00",
            "role": "student",
        },
    )
    fake.add_user("auth-admin", "admin@example.com", metadata_role="admin")
    fake.add_user(
        "auth-record-admin",
        "record-admin@example.com",
        record={"user_id": "u-record-admin", "username": "ranger", "role": "admin"},
    )
    fake.add_user(
        "auth-plain",
        "plain@example.com",
        record={"user_id": "u-plain", "username": "plain", "role": "student"},
    )
    fake.tables["user_details"].append({"auth_id": "auth-other", "user_id": "u-other", "username": "newname", "role": "student"})
    return fake


@pytest.fixture
def token_secret():
    return TOKEN_SECRET


@pytest.fixture
def auth(identity):
    return AuthStateProvider(identity)


@pytest.fixture
def settings():
    return Settings(
        supabase_url="http://supabase.test",
        supabase_key="anon-key",
        role_mismatch_redirect_ms=1500,
        callback_settle_ms=0,
    )


@pytest.fixture
def client(identity, settings):
    async def fake_identity_client():
        # A fresh supabase client per request holds no session until one is restored
        identity._session = None
        return identity

    app.dependency_overrides[identity_client] = fake_identity_client
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
