from typing import Optional

from ecoquest.schemas.auth import Message, Navigation


class Liveness:
    """Token held by a mounted screen. Async continuations check it before touching screen state."""

    def __init__(self):
        self.alive = True

    def revoke(self):
        self.alive = False


class Screen:
    def __init__(self):
        self.liveness: Optional[Liveness] = None
        self.message: Optional[Message] = None
        self.navigation: Optional[Navigation] = None

    @property
    def mounted(self) -> bool:
        return self.liveness is not None and self.liveness.alive

    def mount(self) -> Liveness:
        self.liveness = Liveness()
        return self.liveness

    def unmount(self):
        if self.liveness:
            self.liveness.revoke()

    def set_message(self, type: str, text: str, token: Optional[Liveness] = None):
        if token is not None and not token.alive:
            return
        self.message = Message(type=type, text=text)

    def clear_message(self):
        self.message = None

    def navigate(self, to: str, replace: bool = True, delay_ms: int = 0, token: Optional[Liveness] = None):
        if token is not None and not token.alive:
            return
        # First navigation wins; the screen is leaving
        if self.navigation is None:
            self.navigation = Navigation(to=to, replace=replace, delay_ms=delay_ms)
