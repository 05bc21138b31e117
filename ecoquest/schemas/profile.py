from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ecoquest.schemas.auth import Link, Message, Navigation

USERNAME_MAX_LENGTH = 30
NAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 200

EDITABLE_FIELDS = ("username", "name", "bio", "profile_picture")


# --- user_details row (auth.users.id -> user_details.auth_id) ---
class ProfileRecord(BaseModel):
    user_id: str
    auth_id: str
    username: Optional[str] = None
    name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    points: Optional[int] = None
    quest_completed: Optional[int] = None
    total_points_earned: Optional[int] = None
    total_points_donated: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"  # role and any other columns are not part of the profile


# --- What the profile screen edits and compares ---
class ProfileData(BaseModel):
    username: str = ""
    name: str = ""
    bio: str = ""
    profile_picture: Optional[str] = None
    points: int = Field(0, ge=0)
    quest_completed: int = 0
    total_points_earned: int = 0
    total_points_donated: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ProfileRecord) -> "ProfileData":
        return cls(
            username=record.username or "",
            name=record.name or "",
            bio=record.bio or "",
            profile_picture=record.profile_picture or None,
            points=record.points or 0,
            quest_completed=record.quest_completed or 0,
            total_points_earned=record.total_points_earned or 0,
            total_points_donated=record.total_points_donated or 0,
            created_at=record.created_at,
        )


class ProfileEdit(BaseModel):
    username: str = Field("", max_length=USERNAME_MAX_LENGTH)
    name: str = Field("", max_length=NAME_MAX_LENGTH)
    bio: str = Field("", max_length=BIO_MAX_LENGTH)
    profile_picture: Optional[str] = None


class ProfileScreenState(BaseModel):
    loading: bool
    saving: bool = False
    uploading: bool = False
    profile: Optional[ProfileData] = None
    has_changes: bool = False
    can_save: bool = False
    can_cancel: bool = False
    member_since: str = "Unknown"
    avatar_initial: str = "?"
    message: Optional[Message] = None
    navigation: Optional[Navigation] = None
    tabs: List[Link] = []
