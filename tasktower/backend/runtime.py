"""One local session wired to its lobby, sync loop and phase ticker."""

from __future__ import annotations

import asyncio
import logging

from .config import GameConfig
from .engine import GameSession
from .lobby import LobbyManager
from .models import CreatedLobby, LeftLobby, LobbyInfo
from .scheduler import PhaseTicker
from .store import DocumentStore
from .sync import SYNC_INTERVAL_S, SyncManager


logger = logging.getLogger(__name__)


class SessionRuntime:
    """Owns the background jobs of one session.

    The host drives the phase timer; guests receive it through sync.
    Lobby calls that touch the store run in a worker thread.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: GameConfig | None = None,
        sync_interval: float = SYNC_INTERVAL_S,
        tick_interval: float = 1.0,
    ) -> None:
        self.session = GameSession(config)
        self.lobby = LobbyManager(session=self.session, store=store)
        self.sync = SyncManager(session=self.session, store=store, interval=sync_interval)
        self.ticker = PhaseTicker(self.session, interval=tick_interval)

    async def create_lobby(self, online: bool) -> CreatedLobby:
        await self.stop()
        self.lobby.leave_lobby()
        self.lobby.set_mode(online)
        created = await asyncio.to_thread(self.lobby.create_lobby)
        self._start_sync()
        self.ticker.start()
        return created

    async def join_lobby(self, code: str, online: bool) -> LobbyInfo:
        await self.stop()
        self.lobby.leave_lobby()
        self.lobby.set_mode(online)
        info = self.lobby.join_lobby(code)
        self._start_sync()
        return info

    async def leave_lobby(self) -> LeftLobby:
        await self.stop()
        return self.lobby.leave_lobby()

    def notify_remote_change(self, code: str) -> None:
        if code == self.session.lobby_code:
            self.sync.request_cycle()

    def _start_sync(self) -> None:
        self.sync.start(self.session.snapshot, self.session.apply_snapshot)

    async def stop(self) -> None:
        self.sync.stop()
        self.ticker.stop()
        await self.ticker.wait_closed()
