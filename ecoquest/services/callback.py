"""
Auth callback handler.

Email confirmation and OAuth redirects land here carrying either an
authorization code in the query string or access/refresh tokens in the URL
fragment. The handler finishes establishing the session, refreshes the role,
and only then lets the auth state decide where the user goes.
"""
import asyncio
import logging
from typing import Mapping, Optional
from urllib.parse import parse_qs

from ecoquest.schemas.auth import CallbackScreenState, Role
from ecoquest.services.auth_state import AuthStateProvider
from ecoquest.services.identity import IdentityError
from ecoquest.services.screen import Screen

logger = logging.getLogger(__name__)

CALLBACK_SETTLE_MS = 500


def parse_fragment(fragment: Optional[str]) -> dict:
    if not fragment:
        return {}
    params = parse_qs(fragment.lstrip("#"))
    return {key: values[0] for key, values in params.items() if values}


class CallbackHandler(Screen):
    def __init__(self, auth: AuthStateProvider, settle_delay_ms: int = CALLBACK_SETTLE_MS, sleep=asyncio.sleep):
        super().__init__()
        self.auth = auth
        self.settle_delay_ms = settle_delay_ms
        self.sleep = sleep
        self.processing = True
        self.branch: Optional[str] = None
        self._unsubscribe = None

    def mount(self):
        token = super().mount()
        self._unsubscribe = self.auth.subscribe(self.on_auth_change)
        return token

    def unmount(self):
        super().unmount()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    async def handle(self, query: Mapping[str, str], fragment: Optional[str] = None, code_verifier: Optional[str] = None):
        token = self.liveness
        hash_params = parse_fragment(fragment)
        access_token = hash_params.get("access_token")
        refresh_token = hash_params.get("refresh_token")
        code = query.get("code")
        error = query.get("error")

        if error:
            self.branch = "error"
            logger.error(f"Auth error: {query.get('error_description') or error}")
            self.navigate("/login", replace=True, token=token)
        elif code:
            self.branch = "code"
            try:
                await self.auth.identity.exchange_code_for_session(code, code_verifier)
            except IdentityError as e:
                logger.error(f"Code exchange error: {e.message}")
                self.navigate("/login", replace=True, token=token)
            else:
                await self.auth.refresh_role()
        elif access_token and refresh_token:
            self.branch = "tokens"
            try:
                await self.auth.identity.set_session(access_token, refresh_token)
            except IdentityError as e:
                # No session after settling sends the user back to login
                logger.error(f"Could not adopt callback tokens: {e.message}")
            await self.sleep(self.settle_delay_ms / 1000)
            if not token.alive:
                return
            await self.auth.refresh_role()
        else:
            self.branch = "none"
            logger.info("Callback without code or tokens")

        if not token.alive:
            return
        self.processing = False
        await self.on_auth_change(self.auth)

    async def on_auth_change(self, auth: AuthStateProvider):
        if not self.mounted or self.processing or auth.loading:
            return
        if not auth.session:
            self.navigate("/login", replace=True)
            return
        self.navigate("/admin" if auth.role == Role.ADMIN else "/app", replace=True)

    def to_state(self) -> CallbackScreenState:
        return CallbackScreenState(processing=self.processing, branch=self.branch, navigation=self.navigation)
