from fastapi import APIRouter, Body, Cookie, Depends, Request, Response
from typing import Optional

from ecoquest.config import Settings, get_settings
from ecoquest.dependencies.auth import CODE_VERIFIER_COOKIE, get_auth_state, sync_session_cookies
from ecoquest.schemas.auth import CallbackFragment, CallbackScreenState
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.callback import CallbackHandler

router = APIRouter()


async def run_callback(
    request: Request,
    response: Response,
    auth: AuthStateProvider,
    settings: Settings,
    fragment: Optional[str] = None,
    code_verifier: Optional[str] = None,
) -> CallbackScreenState:
    handler = CallbackHandler(auth, settings.callback_settle_ms)
    handler.mount()
    try:
        await handler.handle(dict(request.query_params), fragment, code_verifier)
        sync_session_cookies(response, auth.session, settings)
        if code_verifier:
            response.delete_cookie(CODE_VERIFIER_COOKIE)
        return handler.to_state()
    finally:
        handler.unmount()


@router.get("/callback", response_model=CallbackScreenState)
async def auth_callback(
    request: Request,
    response: Response,
    code_verifier: Optional[str] = Cookie(None, alias=CODE_VERIFIER_COOKIE),
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await run_callback(request, response, auth, settings, code_verifier=code_verifier)


# The URL fragment never reaches the server, so the page posts it here
@router.post("/callback", response_model=CallbackScreenState)
async def auth_callback_with_fragment(
    request: Request,
    response: Response,
    payload: CallbackFragment = Body(...),
    code_verifier: Optional[str] = Cookie(None, alias=CODE_VERIFIER_COOKIE),
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    return await run_callback(request, response, auth, settings, payload.fragment, code_verifier)
