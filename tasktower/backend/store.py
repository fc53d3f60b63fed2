"""Remote document store interfaces and implementations."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import threading
from typing import Any, Protocol

import httpx

from .config import BackendSettings
from .errors import NotFound, RemoteStoreError
from .models import DocumentRef


class DocumentStore(Protocol):
    def get_document(self, code: str) -> dict[str, Any] | None:
        """Return the current snapshot for a lobby code, or None when absent."""

    def create_document(self, code: str, snapshot: dict[str, Any]) -> DocumentRef:
        """Create a fresh document keyed by the lobby code."""

    def replace_document(self, code: str, snapshot: dict[str, Any]) -> None:
        """Overwrite the game state and participant rows of an existing document."""


@dataclass
class InMemoryDocumentStore:
    """Process-local store; the offline cache and the default for tests."""

    def __post_init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get_document(self, code: str) -> dict[str, Any] | None:
        with self._lock:
            payload = self._documents.get(code)
            if payload is None:
                return None
            return copy.deepcopy(payload["snapshot"])

    def create_document(self, code: str, snapshot: dict[str, Any]) -> DocumentRef:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            if code in self._documents:
                raise RemoteStoreError("document_exists", f"Document {code} already exists")
            self._documents[code] = {
                "snapshot": copy.deepcopy(snapshot),
                "createdAt": now,
                "updatedAt": now,
            }
        return DocumentRef(code=code, created_at=now)

    def replace_document(self, code: str, snapshot: dict[str, Any]) -> None:
        with self._lock:
            payload = self._documents.get(code)
            if payload is None:
                raise NotFound(f"Document {code} not found", {"code": code})
            payload["snapshot"] = copy.deepcopy(snapshot)
            payload["updatedAt"] = datetime.now(timezone.utc).isoformat()


_GAME_STATE_KEYS = ("phase", "round", "totalRounds", "timer", "paused")


@dataclass
class PostgresDocumentStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def get_document(self, code: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT g.phase, g.round, g.total_rounds, g.timer, g.paused
                    FROM lobby_documents d
                    JOIN lobby_game_state g ON g.code = d.code
                    WHERE d.code = %s
                    """,
                    (code,),
                )
                header = cur.fetchone()
                if header is None:
                    return None
                cur.execute(
                    """
                    SELECT participant_id, name, score, joined_at, tasks_json
                    FROM lobby_participants
                    WHERE code = %s
                    ORDER BY position
                    """,
                    (code,),
                )
                rows = cur.fetchall()

        phase, round_number, total_rounds, timer, paused = header
        participants = []
        for participant_id, name, score, joined_at, tasks_json in rows:
            tasks = tasks_json if isinstance(tasks_json, list) else json.loads(tasks_json)
            participants.append(
                {"id": participant_id, "name": name, "score": score, "joinedAt": joined_at, "tasks": tasks}
            )
        return {
            "lobbyCode": code,
            "phase": phase,
            "round": round_number,
            "totalRounds": total_rounds,
            "timer": timer,
            "paused": paused,
            "participants": participants,
        }

    def create_document(self, code: str, snapshot: dict[str, Any]) -> DocumentRef:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO lobby_documents (code, created_at, updated_at)
                    VALUES (%s, %s, %s)
                    """,
                    (code, now, now),
                )
                cur.execute(
                    """
                    INSERT INTO lobby_game_state (code, phase, round, total_rounds, timer, paused)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (code, *(snapshot[key] for key in _GAME_STATE_KEYS)),
                )
                self._insert_participants(cur, code, snapshot)
            conn.commit()
        return DocumentRef(code=code, created_at=now.isoformat())

    def replace_document(self, code: str, snapshot: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE lobby_game_state
                    SET phase = %s, round = %s, total_rounds = %s, timer = %s, paused = %s
                    WHERE code = %s
                    """,
                    (*(snapshot[key] for key in _GAME_STATE_KEYS), code),
                )
                if cur.rowcount == 0:
                    raise NotFound(f"Document {code} not found", {"code": code})
                cur.execute("DELETE FROM lobby_participants WHERE code = %s", (code,))
                self._insert_participants(cur, code, snapshot)
                cur.execute("UPDATE lobby_documents SET updated_at = %s WHERE code = %s", (now, code))
            conn.commit()

    def _insert_participants(self, cur: Any, code: str, snapshot: dict[str, Any]) -> None:
        for position, participant in enumerate(snapshot.get("participants", [])):
            cur.execute(
                """
                INSERT INTO lobby_participants (code, position, participant_id, name, score, joined_at, tasks_json)
                VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
                """,
                (
                    code,
                    position,
                    participant["id"],
                    participant["name"],
                    participant["score"],
                    participant.get("joinedAt", ""),
                    json.dumps(participant.get("tasks", [])),
                ),
            )


@dataclass
class HttpDocumentStore:
    """Client for the document endpoints served by ``tasktower.backend.api``."""

    base_url: str
    timeout: float = 10.0
    client: httpx.Client | None = None

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.Client(base_url=self.base_url.rstrip("/"), timeout=self.timeout)

    def _raise_for_status(self, response: httpx.Response, code: str) -> None:
        if response.status_code == 404:
            raise NotFound(f"Document {code} not found", {"code": code})
        if response.status_code >= 400:
            raise RemoteStoreError("http_error", f"HTTP {response.status_code}: {response.text[:200]}")

    def get_document(self, code: str) -> dict[str, Any] | None:
        response = self.client.get(f"/api/documents/{code}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, code)
        return response.json()["snapshot"]

    def create_document(self, code: str, snapshot: dict[str, Any]) -> DocumentRef:
        response = self.client.post("/api/documents", json={"code": code, "snapshot": snapshot})
        self._raise_for_status(response, code)
        data = response.json()
        return DocumentRef(code=data["code"], created_at=data["created_at"], url=str(response.url))

    def replace_document(self, code: str, snapshot: dict[str, Any]) -> None:
        response = self.client.put(f"/api/documents/{code}", json={"snapshot": snapshot})
        self._raise_for_status(response, code)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


def create_store(settings: BackendSettings) -> DocumentStore:
    if settings.database_url:
        return PostgresDocumentStore(database_url=settings.database_url)
    if settings.remote_url:
        return HttpDocumentStore(base_url=settings.remote_url)
    return InMemoryDocumentStore()
