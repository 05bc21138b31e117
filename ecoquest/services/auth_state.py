"""
Auth State Provider.

Holds `{session, role, loading}` for one browser session and is the only
thing screens read auth from. It is created per request by the
`get_auth_state` dependency, loaded once from the identity client, and
closed when the request ends. Screens never write session or role; they only
ask the provider to `refresh_role()` or `sign_out()`, and every change is
pushed to subscribers.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from ecoquest.schemas.auth import Role, Session
from ecoquest.services.identity import IdentityClient, IdentityError
from ecoquest.services.roles import resolve_role

logger = logging.getLogger(__name__)

Listener = Callable[["AuthStateProvider"], Awaitable[None]]


class AuthStateProvider:
    def __init__(self, identity: IdentityClient, profile_table: str = "user_details", jwt_secret: Optional[str] = None):
        self.identity = identity
        self.profile_table = profile_table
        self.jwt_secret = jwt_secret
        self.session: Optional[Session] = None
        self.role: Optional[Role] = None
        self.loading = True
        self._listeners: List[Listener] = []
        self._closed = False

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self):
        if self._closed:
            return
        for listener in list(self._listeners):
            await listener(self)

    async def _read(self, known_role: Optional[Role] = None):
        self.session = await self.identity.get_session()
        if self.session and known_role:
            self.role = known_role
        elif self.session:
            self.role = await resolve_role(self.identity, self.session, self.profile_table, self.jwt_secret)
        else:
            self.role = None

    async def load(self) -> "AuthStateProvider":
        await self._read()
        self.loading = False
        await self._emit()
        return self

    async def refresh_role(self, known_role: Optional[Role] = None):
        """Re-read the session. `known_role` skips resolution when the caller has just resolved it for this session."""
        await self._read(known_role)
        self.loading = False
        await self._emit()

    async def sign_out(self):
        try:
            await self.identity.sign_out()
            logger.info("Signed out")
        except IdentityError as e:
            logger.error(f"Sign out failed at provider: {e.message}")
        self.session = None
        self.role = None
        await self._emit()

    def close(self):
        self._listeners.clear()
        self._closed = True
