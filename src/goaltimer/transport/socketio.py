"""
Socket.IO session feed — optional push transport for session changes.

A push seam for services that broadcast session changes. The goal-tracking
service's socket server only carries chat events today; a deployment that
emits `session:updated` (payload: a daily session record) gets its changes
forwarded to registered handlers, so reconciliation can react without
waiting for the next poll. Polling stays the source of truth either way.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import pydantic
import socketio

from goaltimer.models.session import Session

logger = logging.getLogger(__name__)

SESSION_UPDATED = "session:updated"

SessionHandler = Callable[[Session], None]


class SessionFeed:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        connect_timeout: float = 15.0,
    ):
        self._base_url = base_url
        self._token = token
        self._transports = transports or ["websocket"]
        self._connect_timeout = connect_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._handlers: list[SessionHandler] = []

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    def add_handler(self, handler: SessionHandler) -> Callable[[], None]:
        """Add a session handler. Returns a cleanup function."""
        self._handlers.append(handler)
        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def dispatch(self, data: Any) -> None:
        try:
            session = Session.model_validate(data)
        except pydantic.ValidationError as e:
            logger.warning("Ignoring malformed %s event: %s", SESSION_UPDATED, e)
            return
        for handler in list(self._handlers):
            handler(session)

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()

        @self._sio.on(SESSION_UPDATED)
        async def on_session_updated(data: Any) -> None:
            self.dispatch(data)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            logger.info("Session feed disconnected")

        try:
            await asyncio.wait_for(
                self._sio.connect(
                    self._base_url,
                    auth={"token": self._token} if self._token else None,
                    transports=self._transports,
                ),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            await self._sio.disconnect()
            raise TimeoutError(f"Timed out connecting session feed after {self._connect_timeout}s")

    async def disconnect(self) -> None:
        if self._sio:
            await self._sio.disconnect()
            self._sio = None
