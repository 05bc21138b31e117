from fastapi import APIRouter, Depends, Response
from typing import Optional

from ecoquest.config import Settings, get_settings
from ecoquest.dependencies.auth import get_auth_state, sync_session_cookies
from ecoquest.schemas.auth import Credentials, LoginScreenState, Role
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.role_router import LoginScreen

router = APIRouter()


async def render_login(
    audience: Role,
    auth: AuthStateProvider,
    settings: Settings,
    response: Response,
    credentials: Optional[Credentials] = None,
) -> LoginScreenState:
    screen = LoginScreen(auth, audience, settings.role_mismatch_redirect_ms)
    await screen.mount()
    try:
        if credentials:
            await screen.submit(credentials.email, credentials.password)
        sync_session_cookies(response, auth.session, settings)
        return screen.to_state()
    finally:
        screen.unmount()


# -------- Student login --------
@router.get("/login", response_model=LoginScreenState)
async def student_login(
    response: Response,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await render_login(Role.STUDENT, auth, settings, response)


@router.post("/login", response_model=LoginScreenState)
async def student_sign_in(
    credentials: Credentials,
    response: Response,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await render_login(Role.STUDENT, auth, settings, response, credentials)


# -------- Admin login --------
@router.get("/admin/login", response_model=LoginScreenState)
async def admin_login(
    response: Response,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await render_login(Role.ADMIN, auth, settings, response)


@router.post("/admin/login", response_model=LoginScreenState)
async def admin_sign_in(
    credentials: Credentials,
    response: Response,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await render_login(Role.ADMIN, auth, settings, response, credentials)
