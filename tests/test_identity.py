from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from ecoquest.services.identity import IdentityClient, IdentityError


class ProviderError(Exception):
    def __init__(self, message):
        super().__init__(f"{message} (status 400)")
        self.message = message


class Query:
    """Records the chained filters a supabase query builder receives."""

    def __init__(self, rows):
        self.rows = rows
        self.ops = []

    def __getattr__(self, name):
        def op(*args):
            self.ops.append((name, *args))
            return self

        return op

    def execute(self):
        self.ops.append(("execute",))
        return SimpleNamespace(data=self.rows)


def provider_user(user_id="auth-1", role=None):
    return SimpleNamespace(
        id=user_id,
        email="someone@example.com",
        user_metadata={"role": role} if role else {},
        app_metadata={"provider": "email"},
    )


def provider_session(access="access-1", refresh="refresh-1", role=None):
    return SimpleNamespace(access_token=access, refresh_token=refresh, expires_at=1700000000, user=provider_user(role=role))


@pytest.fixture
def supabase():
    return MagicMock()


@pytest.fixture
def client(supabase):
    return IdentityClient(supabase)


# -------- Auth --------
async def test_sign_in_converts_provider_session(supabase, client):
    supabase.auth.sign_in_with_password.return_value = SimpleNamespace(session=provider_session(role="admin"), user=provider_user())

    session = await client.sign_in_with_password("someone@example.com", "password123")

    supabase.auth.sign_in_with_password.assert_called_once_with({"email": "someone@example.com", "password": "password123"})
    assert session.access_token == "access-1"
    assert session.user.user_metadata == {"role": "admin"}
    assert await client.get_session() == session


async def test_sign_in_passes_provider_message_through(supabase, client):
    supabase.auth.sign_in_with_password.side_effect = ProviderError("Invalid login credentials")

    with pytest.raises(IdentityError) as exc:
        await client.sign_in_with_password("someone@example.com", "wrong-pass")
    assert exc.value.message == "Invalid login credentials"


async def test_sign_in_without_session_is_an_error(supabase, client):
    supabase.auth.sign_in_with_password.return_value = SimpleNamespace(session=None, user=provider_user())

    with pytest.raises(IdentityError) as exc:
        await client.sign_in_with_password("someone@example.com", "password123")
    assert exc.value.message == "Email not confirmed"
    assert await client.get_session() is None


async def test_bearer_session_sign_out_revokes_token(supabase, client):
    supabase.auth.get_user.return_value = SimpleNamespace(user=provider_user())

    session = await client.restore_session("bearer-token")
    assert session.user_id == "auth-1"

    await client.sign_out()
    supabase.auth.admin.sign_out.assert_called_once_with("bearer-token")
    supabase.auth.sign_out.assert_not_called()
    assert await client.get_session() is None


async def test_cookie_session_sign_out_uses_client_session(supabase, client):
    supabase.auth.set_session.return_value = SimpleNamespace(session=provider_session())

    await client.restore_session("access-1", "refresh-1")
    await client.sign_out()

    supabase.auth.set_session.assert_called_once_with("access-1", "refresh-1")
    supabase.auth.sign_out.assert_called_once_with()
    supabase.auth.admin.sign_out.assert_not_called()


async def test_restore_returns_rotated_tokens(supabase, client):
    supabase.auth.set_session.return_value = SimpleNamespace(session=provider_session("access-2", "refresh-2"))

    session = await client.restore_session("expired-access", "refresh-1")
    assert (session.access_token, session.refresh_token) == ("access-2", "refresh-2")


async def test_rejected_tokens_restore_nothing(supabase, client):
    supabase.auth.get_user.side_effect = ProviderError("invalid JWT")
    assert await client.restore_session("stale") is None


async def test_sign_out_failure_still_drops_session(supabase, client):
    supabase.auth.set_session.return_value = SimpleNamespace(session=provider_session())
    supabase.auth.sign_out.side_effect = ProviderError("network down")
    await client.restore_session("access-1", "refresh-1")

    with pytest.raises(IdentityError):
        await client.sign_out()
    assert await client.get_session() is None


async def test_exchange_code_passes_verifier(supabase, client):
    supabase.auth.exchange_code_for_session.return_value = SimpleNamespace(session=provider_session())

    await client.exchange_code_for_session("abc", "verifier-1")
    supabase.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "abc", "code_verifier": "verifier-1"})


async def test_exchange_code_without_verifier(supabase, client):
    supabase.auth.exchange_code_for_session.return_value = SimpleNamespace(session=provider_session())

    await client.exchange_code_for_session("abc")
    supabase.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "abc"})


async def test_get_user_uses_session_token(supabase, client):
    supabase.auth.set_session.return_value = SimpleNamespace(session=provider_session())
    supabase.auth.get_user.return_value = SimpleNamespace(user=provider_user("auth-1"))
    await client.set_session("access-1", "refresh-1")

    user = await client.get_user()
    supabase.auth.get_user.assert_called_once_with("access-1")
    assert user.id == "auth-1"


# -------- Tables --------
async def test_select_chains_filters(supabase, client):
    query = Query([{"user_id": "u-2"}])
    supabase.table.return_value = query

    rows = await client.select("user_details", "user_id", eq={"username": "newname"}, neq={"user_id": "u-1"}, limit=1)

    supabase.table.assert_called_once_with("user_details")
    assert query.ops == [
        ("select", "user_id"),
        ("eq", "username", "newname"),
        ("neq", "user_id", "u-1"),
        ("limit", 1),
        ("execute",),
    ]
    assert rows == [{"user_id": "u-2"}]


async def test_select_empty_data_is_empty_list(supabase, client):
    supabase.table.return_value = Query(None)
    assert await client.select("user_details", eq={"auth_id": "x"}) == []


async def test_update_filters_by_key(supabase, client):
    query = Query([{"user_id": "u-1", "bio": "hi"}])
    supabase.table.return_value = query

    await client.update("user_details", {"bio": "hi"}, eq={"user_id": "u-1"})
    assert query.ops == [("update", {"bio": "hi"}), ("eq", "user_id", "u-1"), ("execute",)]


async def test_table_errors_become_identity_errors(supabase, client):
    supabase.table.side_effect = ProviderError("permission denied for table user_details")

    with pytest.raises(IdentityError) as exc:
        await client.select("user_details")
    assert exc.value.message == "permission denied for table user_details"


# -------- Storage --------
async def test_upload_sends_content_type_and_upsert(supabase, client):
    bucket = supabase.storage.from_.return_value

    await client.upload("quest-images", "profiles/u-1_1.png", b"png", "image/png")

    supabase.storage.from_.assert_called_with("quest-images")
    bucket.upload.assert_called_once_with("profiles/u-1_1.png", b"png", {"content-type": "image/png", "upsert": "true"})


async def test_public_url(supabase, client):
    supabase.storage.from_.return_value.get_public_url.return_value = "https://cdn.example.test/profiles/u-1_1.png"
    assert await client.get_public_url("quest-images", "profiles/u-1_1.png") == "https://cdn.example.test/profiles/u-1_1.png"
