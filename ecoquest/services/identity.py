"""
Thin async adapter over the supabase client.

Everything the screens need from the hosted backend goes through here: auth
(sign in, sign out, code exchange, current user), row reads and updates on
plain equality filters, and object storage. The supabase client is blocking,
so each call runs in Starlette's threadpool.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from supabase import Client

from ecoquest.schemas.auth import AuthUser, Session

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """A failed call to the identity/storage backend. `message` is the provider's text."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _error_message(e: Exception) -> str:
    return getattr(e, "message", None) or str(e)


def _to_user(user) -> AuthUser:
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        user_metadata=getattr(user, "user_metadata", None) or {},
        app_metadata=getattr(user, "app_metadata", None) or {},
    )


def _to_session(session) -> Session:
    return Session(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=getattr(session, "expires_at", None),
        user=_to_user(session.user),
    )


class IdentityClient:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self._session: Optional[Session] = None
        # False when the session is only a bearer token the client was never given
        self._stored = False

    # -------- Auth --------
    async def get_session(self) -> Optional[Session]:
        return self._session

    async def get_user(self) -> Optional[AuthUser]:
        if not self._session:
            return None
        try:
            user_res = await run_in_threadpool(self.supabase.auth.get_user, self._session.access_token)
        except Exception as e:
            logger.warning(f"Could not load current user: {_error_message(e)}")
            return None
        if not user_res or not user_res.user:
            return None
        return _to_user(user_res.user)

    async def restore_session(self, access_token: str, refresh_token: Optional[str] = None) -> Optional[Session]:
        """Rebuild the session a browser is holding. Returns None if the tokens are no longer valid."""
        try:
            if refresh_token:
                res = await run_in_threadpool(self.supabase.auth.set_session, access_token, refresh_token)
                self._session = _to_session(res.session) if res.session else None
                self._stored = self._session is not None
            else:
                user_res = await run_in_threadpool(self.supabase.auth.get_user, access_token)
                self._session = Session(access_token=access_token, user=_to_user(user_res.user)) if user_res and user_res.user else None
                self._stored = False
        except Exception as e:
            logger.info(f"Stored session rejected by provider: {_error_message(e)}")
            self._session = None
            self._stored = False
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        try:
            res = await run_in_threadpool(
                self.supabase.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except Exception as e:
            raise IdentityError(_error_message(e))
        if not res.session:
            raise IdentityError("Email not confirmed")
        self._session = _to_session(res.session)
        self._stored = True
        return self._session

    async def sign_out(self) -> None:
        try:
            if self._session and not self._stored:
                # The client holds no session to sign out, so revoke the bearer token itself
                await run_in_threadpool(self.supabase.auth.admin.sign_out, self._session.access_token)
            else:
                await run_in_threadpool(self.supabase.auth.sign_out)
        except Exception as e:
            raise IdentityError(_error_message(e))
        finally:
            self._session = None
            self._stored = False

    async def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None) -> Session:
        params = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        try:
            res = await run_in_threadpool(self.supabase.auth.exchange_code_for_session, params)
        except Exception as e:
            raise IdentityError(_error_message(e))
        if not res.session:
            raise IdentityError("No session returned for code")
        self._session = _to_session(res.session)
        self._stored = True
        return self._session

    async def set_session(self, access_token: str, refresh_token: str) -> Session:
        try:
            res = await run_in_threadpool(self.supabase.auth.set_session, access_token, refresh_token)
        except Exception as e:
            raise IdentityError(_error_message(e))
        if not res.session:
            raise IdentityError("No session returned for tokens")
        self._session = _to_session(res.session)
        self._stored = True
        return self._session

    # -------- Tables --------
    async def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[Dict[str, Any]] = None,
        neq: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        def run():
            query = self.supabase.table(table).select(columns)
            for column, value in (eq or {}).items():
                query = query.eq(column, value)
            for column, value in (neq or {}).items():
                query = query.neq(column, value)
            if limit:
                query = query.limit(limit)
            return query.execute()

        try:
            response = await run_in_threadpool(run)
        except Exception as e:
            raise IdentityError(_error_message(e))
        return response.data or []

    async def update(self, table: str, values: Dict[str, Any], eq: Dict[str, Any]) -> List[Dict[str, Any]]:
        def run():
            query = self.supabase.table(table).update(values)
            for column, value in eq.items():
                query = query.eq(column, value)
            return query.execute()

        try:
            response = await run_in_threadpool(run)
        except Exception as e:
            raise IdentityError(_error_message(e))
        return response.data or []

    # -------- Storage --------
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str, upsert: bool = True) -> None:
        file_options = {"content-type": content_type, "upsert": "true" if upsert else "false"}
        try:
            await run_in_threadpool(self.supabase.storage.from_(bucket).upload, path, data, file_options)
        except Exception as e:
            raise IdentityError(_error_message(e))

    async def get_public_url(self, bucket: str, path: str) -> str:
        try:
            return await run_in_threadpool(self.supabase.storage.from_(bucket).get_public_url, path)
        except Exception as e:
            raise IdentityError(_error_message(e))
