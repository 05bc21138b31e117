"""
Profile screen.

Edits only ever touch the local buffer. The snapshot is the last copy the
backend confirmed; save and cancel are only offered while the two differ.
Avatar uploads go to storage straight away but the new URL lands in the
buffer, so it is not part of the profile until the user saves.
"""
import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError

from ecoquest.schemas.auth import Link
from ecoquest.schemas.profile import (
    BIO_MAX_LENGTH,
    NAME_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    ProfileData,
    ProfileRecord,
    ProfileScreenState,
)
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.identity import IdentityError
from ecoquest.services.screen import Screen

logger = logging.getLogger(__name__)

MAX_AVATAR_BYTES = 5 * 1024 * 1024

MAX_LENGTHS = {
    "username": USERNAME_MAX_LENGTH,
    "name": NAME_MAX_LENGTH,
    "bio": BIO_MAX_LENGTH,
}

TABS: List[Link] = [
    Link(label="Quests", to="/app"),
    Link(label="Community", to="/community"),
    Link(label="Redeem", to="/redeem"),
    Link(label="Profile", to="/profile"),
]


def epoch_millis() -> int:
    return int(time.time() * 1000)


def avatar_path(user_id: str, filename: str, millis: int) -> str:
    extension = filename.rsplit(".", 1)[-1]
    return f"profiles/{user_id}_{millis}.{extension}"


def format_member_since(profile: Optional[ProfileData]) -> str:
    if not profile or not profile.created_at:
        return "Unknown"
    created = profile.created_at
    return f"{created.strftime('%B')} {created.day}, {created.year}"


class ProfileScreen(Screen):
    def __init__(
        self,
        auth: AuthStateProvider,
        table: str = "user_details",
        bucket: str = "quest-images",
        clock: Callable[[], int] = epoch_millis,
    ):
        super().__init__()
        self.auth = auth
        self.identity = auth.identity
        self.table = table
        self.bucket = bucket
        self.clock = clock
        self.loading = True
        self.saving = False
        self.uploading = False
        self.user_id: Optional[str] = None
        self.snapshot: Optional[ProfileData] = None
        self.buffer = ProfileData()

    @property
    def has_changes(self) -> bool:
        return self.buffer != self.snapshot

    @property
    def can_save(self) -> bool:
        return self.snapshot is not None and self.has_changes and not self.saving

    can_cancel = can_save

    # -------- Fetch --------
    async def fetch(self):
        token = self.liveness
        try:
            user = await self.identity.get_user()
            if not user:
                self.navigate("/login", replace=False, token=token)
                return

            rows = await self.identity.select(self.table, "*", eq={"auth_id": user.id}, limit=1)
            if not rows:
                raise IdentityError(f"No {self.table} row for {user.id}")
            record = ProfileRecord(**rows[0])
            if not token.alive:
                return

            self.user_id = record.user_id
            self.snapshot = ProfileData.from_record(record)
            self.buffer = self.snapshot.model_copy()
        except (IdentityError, ValidationError) as e:
            logger.error(f"Error fetching profile: {str(e)}")
            self.set_message("error", "Failed to load profile", token)
        finally:
            if token.alive:
                self.loading = False

    # -------- Edit --------
    def edit(self, **fields):
        updates = {}
        for name, value in fields.items():
            if name == "profile_picture":
                updates[name] = value or None
                continue
            if name not in MAX_LENGTHS:
                raise ValueError(f"{name} is not an editable profile field")
            updates[name] = (value or "")[: MAX_LENGTHS[name]]
        self.buffer = self.buffer.model_copy(update=updates)

    def cancel(self):
        if not self.can_cancel:
            return
        self.buffer = self.snapshot.model_copy()
        self.clear_message()

    # -------- Avatar --------
    async def upload_avatar(self, filename: str, content_type: Optional[str], data: bytes):
        token = self.liveness
        if self.snapshot is None:
            return
        if not (content_type or "").startswith("image/"):
            self.set_message("error", "Please select an image file")
            return
        if len(data) > MAX_AVATAR_BYTES:
            self.set_message("error", "Image must be less than 5MB")
            return

        self.uploading = True
        self.clear_message()
        path = avatar_path(self.user_id, filename, self.clock())
        try:
            await self.identity.upload(self.bucket, path, data, content_type, upsert=True)
            public_url = await self.identity.get_public_url(self.bucket, path)
            if not token.alive:
                return
            self.buffer = self.buffer.model_copy(update={"profile_picture": public_url})
            self.set_message("success", "Image uploaded! Click Save to confirm changes.")
            logger.info(f"Uploaded avatar for {self.user_id} to {path}")
        except IdentityError as e:
            logger.error(f"Error uploading image: {e.message}")
            self.set_message("error", "Failed to upload image", token)
        finally:
            if token.alive:
                self.uploading = False

    # -------- Save --------
    async def save(self):
        token = self.liveness
        if not self.can_save:
            return
        self.saving = True
        self.clear_message()
        try:
            username = self.buffer.username.strip()
            if not username:
                self.set_message("error", "Username is required")
                return

            if self.buffer.username != self.snapshot.username:
                taken = await self.identity.select(
                    self.table,
                    "user_id",
                    eq={"username": username},
                    neq={"user_id": self.user_id},
                    limit=1,
                )
                if taken:
                    self.set_message("error", "Username is already taken", token)
                    return

            saved = self.buffer.model_copy(
                update={
                    "username": username,
                    "name": self.buffer.name.strip(),
                    "bio": self.buffer.bio.strip(),
                }
            )
            await self.identity.update(
                self.table,
                {
                    "username": saved.username,
                    "name": saved.name,
                    "bio": saved.bio,
                    "profile_picture": saved.profile_picture,
                },
                eq={"user_id": self.user_id},
            )
            if not token.alive:
                return

            self.snapshot = saved
            self.buffer = saved.model_copy()
            self.set_message("success", "Profile updated successfully!")
            logger.info(f"Saved profile {self.user_id}")
        except IdentityError as e:
            logger.error(f"Error saving profile: {e.message}")
            self.set_message("error", "Failed to save profile", token)
        finally:
            if token.alive:
                self.saving = False

    async def logout(self):
        await self.auth.sign_out()
        self.navigate("/login", replace=False)

    def to_state(self) -> ProfileScreenState:
        name = self.buffer.name
        return ProfileScreenState(
            loading=self.loading,
            saving=self.saving,
            uploading=self.uploading,
            profile=self.buffer if self.snapshot is not None else None,
            has_changes=self.snapshot is not None and self.has_changes,
            can_save=self.can_save,
            can_cancel=self.can_cancel,
            member_since=format_member_since(self.snapshot),
            avatar_initial=name[0].upper() if name else "?",
            message=self.message,
            navigation=self.navigation,
            tabs=TABS,
        )
