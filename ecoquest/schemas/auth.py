from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


# --- Identity provider objects (auth.users) ---
class AuthUser(BaseModel):
    id: str  # auth.users.id
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
    app_metadata: Dict[str, Any] = {}


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    user: AuthUser

    @property
    def user_id(self) -> str:
        return self.user.id


# --- Screen state shared by every screen ---
class Message(BaseModel):
    type: str  # "error" | "success"
    text: str


class Navigation(BaseModel):
    to: str
    replace: bool = True
    delay_ms: int = 0


class Link(BaseModel):
    label: str
    to: str


# --- Login screens ---
class Credentials(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=8)


class LoginScreenState(BaseModel):
    audience: Role
    state: str
    show_form: bool
    submitting: bool = False
    submit_label: str
    message: Optional[Message] = None
    navigation: Optional[Navigation] = None
    links: List[Link] = []


# --- Callback ---
class CallbackFragment(BaseModel):
    fragment: Optional[str] = None  # window.location.hash, with or without "#"


class CallbackScreenState(BaseModel):
    processing: bool
    branch: Optional[str] = None
    navigation: Optional[Navigation] = None
