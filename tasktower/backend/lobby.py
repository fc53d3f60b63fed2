"""Lobby creation, joining and identity for a game session."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .codes import generate_lobby_code, is_valid_code, normalize_code
from .engine import GameSession
from .errors import InvalidCode, ModeLocked, RemoteProvisioningFailed
from .models import CreatedLobby, LeftLobby, LobbyInfo, Role
from .state import build_initial_state
from .store import DocumentStore


logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


@dataclass
class LobbyManager:
    """Stateless lobby service; all identity lives on the session."""

    session: GameSession
    store: DocumentStore

    def set_mode(self, online: bool) -> None:
        if self.session.lobby_code is not None and self.session.online != online:
            raise ModeLocked()
        self.session.online = online

    def _fresh_code(self) -> str:
        code = generate_lobby_code()
        if not self.session.online:
            return code
        for _ in range(CODE_ATTEMPTS - 1):
            if self.store.get_document(code) is None:
                return code
            logger.info("Lobby code %s already taken, generating another", code)
            code = generate_lobby_code()
        return code

    def create_lobby(self) -> CreatedLobby:
        online = self.session.online
        document = None
        if online:
            code = None
            try:
                code = self._fresh_code()
                initial = build_initial_state(lobby_code=code, total_rounds=self.session.config.max_rounds)
                document = self.store.create_document(code, initial)
            except Exception as exc:
                logger.error("Failed to provision remote document for lobby %s: %s", code, exc)
                raise RemoteProvisioningFailed(code or "<unassigned>", exc) from exc
        else:
            code = self._fresh_code()

        with self.session.lock:
            self.session.lobby_code = code
            self.session.role = Role.HOST
            self.session.reset()

        logger.info("Created %s lobby with code %s", "online" if self.session.online else "local", code)
        return CreatedLobby(code=code, role=Role.HOST, online=online, document=document)

    def join_lobby(self, code: str) -> LobbyInfo:
        if not code or not is_valid_code(code):
            raise InvalidCode(f"Invalid lobby code: {code!r}")
        normalized = normalize_code(code)
        with self.session.lock:
            self.session.lobby_code = normalized
            self.session.role = Role.GUEST
        logger.info("Joined %s lobby with code %s", "online" if self.session.online else "local", normalized)
        return LobbyInfo(
            code=normalized,
            role=Role.GUEST,
            online=self.session.online,
            participant_count=len(self.session.participants()),
        )

    def leave_lobby(self) -> LeftLobby:
        with self.session.lock:
            code = self.session.lobby_code
            self.session.lobby_code = None
            self.session.role = None
        if code is not None:
            logger.info("Left lobby %s", code)
        return LeftLobby(was_in_lobby=code is not None, code=code)

    def get_lobby_info(self) -> LobbyInfo | None:
        with self.session.lock:
            if self.session.lobby_code is None or self.session.role is None:
                return None
            return LobbyInfo(
                code=self.session.lobby_code,
                role=self.session.role,
                online=self.session.online,
                participant_count=len(self.session.participants()),
            )
