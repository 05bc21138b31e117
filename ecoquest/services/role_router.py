"""
Role router for the two login screens.

Guard: once the auth state has finished loading, a session whose role does
not belong on this screen is signed out and sent to the other login screen
after a short delay (so the warning can be read); a matching session goes
straight to its home screen; no session shows the credential form.

Submit: a successful sign-in never navigates by itself. The screen asks the
auth state to refresh and the guard reacts to the new session.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ecoquest.schemas.auth import Link, LoginScreenState, Role, Session
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.identity import IdentityError
from ecoquest.services.roles import resolve_role
from ecoquest.services.screen import Screen

logger = logging.getLogger(__name__)

ROLE_MISMATCH_REDIRECT_MS = 1500


class GuardState(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_MATCHING = "authenticated-matching"
    AUTHENTICATED_MISMATCHED = "authenticated-mismatched"


@dataclass(frozen=True)
class Audience:
    role: Role
    home: str
    other_login: str
    guard_message: str
    rejection_message: str
    submit_label: str
    links: List[Link] = field(default_factory=list)


STUDENT_AUDIENCE = Audience(
    role=Role.STUDENT,
    home="/Homepage",
    other_login="/admin/login",
    guard_message="Admins cannot use Student Login. Redirecting to Admin Login...",
    rejection_message="This is an admin account. Please use Admin Login instead.",
    submit_label="Sign In",
    links=[Link(label="Sign up", to="/signup"), Link(label="Admin Login", to="/admin/login")],
)

ADMIN_AUDIENCE = Audience(
    role=Role.ADMIN,
    home="/admin",
    other_login="/login",
    guard_message="Students cannot use Admin Login. Redirecting to Student Login...",
    rejection_message="This account does not have admin privileges. Use Student Login instead.",
    submit_label="Sign In as Admin",
    links=[Link(label="Admin Sign Up", to="/admin/signup"), Link(label="Student Login", to="/login")],
)

AUDIENCES = {Role.STUDENT: STUDENT_AUDIENCE, Role.ADMIN: ADMIN_AUDIENCE}


def role_matches(role: Optional[Role], audience: Role) -> bool:
    # Anything that is not admin is treated as a student
    if audience == Role.ADMIN:
        return role == Role.ADMIN
    return role != Role.ADMIN


def guard_state(session: Optional[Session], role: Optional[Role], loading: bool, audience: Role) -> GuardState:
    if loading:
        return GuardState.LOADING
    if not session:
        return GuardState.UNAUTHENTICATED
    if role_matches(role, audience):
        return GuardState.AUTHENTICATED_MATCHING
    return GuardState.AUTHENTICATED_MISMATCHED


class LoginScreen(Screen):
    def __init__(self, auth: AuthStateProvider, audience: Role, redirect_delay_ms: int = ROLE_MISMATCH_REDIRECT_MS):
        super().__init__()
        self.auth = auth
        self.audience = AUDIENCES[audience]
        self.redirect_delay_ms = redirect_delay_ms
        self.state = GuardState.LOADING
        self.submitting = False
        self._unsubscribe = None

    async def mount(self):
        token = super().mount()
        self._unsubscribe = self.auth.subscribe(self.on_auth_change)
        await self.on_auth_change(self.auth)
        return token

    def unmount(self):
        super().unmount()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    async def on_auth_change(self, auth: AuthStateProvider):
        if not self.mounted or self.navigation is not None:
            return
        self.state = guard_state(auth.session, auth.role, auth.loading, self.audience.role)

        if self.state == GuardState.AUTHENTICATED_MISMATCHED:
            logger.warning(f"Role {auth.role.value if auth.role else None} signed in on {self.audience.role.value} login, signing out")
            self.set_message("error", self.audience.guard_message)
            self.navigate(self.audience.other_login, replace=True, delay_ms=self.redirect_delay_ms)
            await auth.sign_out()
        elif self.state == GuardState.AUTHENTICATED_MATCHING:
            self.navigate(self.audience.home, replace=True)

    async def submit(self, email: str, password: str):
        token = self.liveness
        self.submitting = True
        self.clear_message()
        identity = self.auth.identity

        try:
            session = await identity.sign_in_with_password(email, password)
        except IdentityError as e:
            logger.info(f"Sign in failed for {email}: {e.message}")
            self.set_message("error", e.message, token)
            self.submitting = False
            return

        role = await resolve_role(identity, session, self.auth.profile_table, self.auth.jwt_secret)
        if not role_matches(role, self.audience.role):
            logger.warning(f"{email} signed in with role {role.value} on {self.audience.role.value} login")
            self.set_message("error", self.audience.rejection_message, token)
            await self.auth.sign_out()
            self.submitting = False
            return

        logger.info(f"{email} signed in as {role.value}")
        self.submitting = False
        # Guard picks up the new session and navigates
        await self.auth.refresh_role(role)

    def to_state(self) -> LoginScreenState:
        return LoginScreenState(
            audience=self.audience.role,
            state=self.state.value,
            show_form=self.state == GuardState.UNAUTHENTICATED and self.navigation is None,
            submitting=self.submitting,
            submit_label="Signing in..." if self.submitting else self.audience.submit_label,
            message=self.message,
            navigation=self.navigation,
            links=self.audience.links,
        )
