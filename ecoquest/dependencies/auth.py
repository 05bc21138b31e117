from fastapi import Cookie, Depends, Header, HTTPException, Response
from supabase import create_client
from typing import Optional
import time
import logging

from ecoquest.config import Settings, get_settings
from ecoquest.schemas.auth import Session
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.identity import IdentityClient

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"
CODE_VERIFIER_COOKIE = "sb-code-verifier"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 7


async def identity_client(settings: Settings = Depends(get_settings)) -> IdentityClient:
    if not settings.supabase_url or not settings.supabase_key:
        logger.error("Supabase URL or Key not found in environment variables")
        raise HTTPException(status_code=500, detail="Server configuration error")

    try:
        logger.info("Creating Supabase client")
        supabase = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(f"Supabase client error: {str(e)}")
        raise HTTPException(status_code=500, detail="Server configuration error")
    return IdentityClient(supabase)


async def get_auth_state(
    response: Response,
    authorization: Optional[str] = Header(None),
    access_token: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    identity: IdentityClient = Depends(identity_client),
    settings: Settings = Depends(get_settings),
):
    """Auth state for this request, rebuilt from the bearer header or the session cookies."""
    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Invalid token format")
        access_token = authorization.split(" ")[1]
        refresh_token = None

    if access_token:
        start_time = time.time()
        session = await identity.restore_session(access_token, refresh_token)
        logger.info(f"Session restore completed in {time.time() - start_time:.2f} seconds")
        if session:
            logger.info(f"Restored session for user: {session.user_id}")
        if session and refresh_token and session.access_token != access_token:
            # Provider refreshed an expired token; the old refresh token is now spent
            sync_session_cookies(response, session, settings)

    auth = AuthStateProvider(identity, settings.profile_table, settings.supabase_jwt_secret)
    await auth.load()
    try:
        yield auth
    finally:
        auth.close()


def sync_session_cookies(response: Response, session: Optional[Session], settings: Settings):
    if not session:
        response.delete_cookie(ACCESS_COOKIE)
        response.delete_cookie(REFRESH_COOKIE)
        return

    options = {
        "max_age": SESSION_COOKIE_MAX_AGE,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "lax",
    }
    response.set_cookie(ACCESS_COOKIE, session.access_token, **options)
    if session.refresh_token:
        response.set_cookie(REFRESH_COOKIE, session.refresh_token, **options)
