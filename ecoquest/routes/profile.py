from fastapi import APIRouter, Depends, File, Response, UploadFile
import logging

from ecoquest.config import Settings, get_settings
from ecoquest.dependencies.auth import get_auth_state, sync_session_cookies
from ecoquest.schemas.profile import ProfileEdit, ProfileScreenState
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.profile import ProfileScreen

logger = logging.getLogger(__name__)

router = APIRouter()


async def load_profile_screen(auth: AuthStateProvider, settings: Settings) -> ProfileScreen:
    screen = ProfileScreen(auth, settings.profile_table, settings.avatar_bucket)
    screen.mount()
    await screen.fetch()
    return screen


# -------- Get profile --------
@router.get("/profile", response_model=ProfileScreenState)
async def get_profile(auth: AuthStateProvider = Depends(get_auth_state), settings: Settings = Depends(get_settings)):
    screen = await load_profile_screen(auth, settings)
    try:
        return screen.to_state()
    finally:
        screen.unmount()


# -------- Upload avatar (not saved until PUT /profile) --------
@router.post("/profile/avatar", response_model=ProfileScreenState)
async def upload_avatar(
    file: UploadFile = File(...),
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    screen = await load_profile_screen(auth, settings)
    try:
        data = await file.read()
        logger.info(f"Received avatar {file.filename} ({len(data)} bytes)")
        await screen.upload_avatar(file.filename or "", file.content_type, data)
        return screen.to_state()
    finally:
        screen.unmount()


# -------- Save profile --------
@router.put("/profile", response_model=ProfileScreenState)
async def save_profile(
    edit: ProfileEdit,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    screen = await load_profile_screen(auth, settings)
    try:
        if screen.snapshot is not None:
            screen.edit(**edit.model_dump())
            await screen.save()
        return screen.to_state()
    finally:
        screen.unmount()


# -------- Discard edits --------
@router.post("/profile/cancel", response_model=ProfileScreenState)
async def cancel_profile_edit(
    edit: ProfileEdit,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    screen = await load_profile_screen(auth, settings)
    try:
        if screen.snapshot is not None:
            screen.edit(**edit.model_dump())
            screen.cancel()
        return screen.to_state()
    finally:
        screen.unmount()


# -------- Logout --------
@router.post("/logout", response_model=ProfileScreenState)
async def logout(
    response: Response,
    auth: AuthStateProvider = Depends(get_auth_state),
    settings: Settings = Depends(get_settings),
):
    screen = ProfileScreen(auth, settings.profile_table, settings.avatar_bucket)
    screen.mount()
    try:
        await screen.logout()
        sync_session_cookies(response, auth.session, settings)
        return screen.to_state()
    finally:
        screen.unmount()
