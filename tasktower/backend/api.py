"""FastAPI endpoints for the document store, lobby and local session."""

from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import BackendSettings, load_settings
from .errors import (
    CapacityExceeded,
    HostOnlyOperation,
    InvalidPhaseTransition,
    InvalidStateTransition,
    ModeLocked,
    NotFound,
    RemoteStoreError,
    TaskTowerError,
)
from .runtime import SessionRuntime
from .store import DocumentStore, create_store


class CreateDocumentRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    snapshot: dict[str, Any]


class CreateDocumentResponse(BaseModel):
    code: str
    created_at: str


class DocumentResponse(BaseModel):
    snapshot: dict[str, Any]


class ReplaceDocumentRequest(BaseModel):
    snapshot: dict[str, Any]


class CreateLobbyRequest(BaseModel):
    online: bool = False


class JoinLobbyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    online: bool = False


class LobbyResponse(BaseModel):
    code: str
    role: str
    online: bool
    participant_count: int


class LeaveLobbyResponse(BaseModel):
    was_in_lobby: bool


class ActionEnvelope(BaseModel):
    action: dict[str, Any]


class SessionStateResponse(BaseModel):
    state: dict[str, Any]


class ActionResponse(BaseModel):
    state: dict[str, Any]
    engine_events: list[dict[str, Any]]


class DocumentWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, code: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[code].add(websocket)

    def disconnect(self, code: str, websocket: WebSocket) -> None:
        connections = self._connections.get(code)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(code, None)

    async def send_snapshot(self, websocket: WebSocket, kind: str, snapshot: dict[str, Any]) -> None:
        await websocket.send_json({"type": kind, "snapshot": snapshot})

    async def broadcast_snapshot(self, code: str, snapshot: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(code, set())):
            try:
                await self.send_snapshot(websocket, "document.replaced", snapshot)
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(code=code, websocket=websocket)


_STATUS_BY_ERROR: list[tuple[type[TaskTowerError], int]] = [
    (NotFound, 404),
    (HostOnlyOperation, 403),
    (CapacityExceeded, 409),
    (InvalidPhaseTransition, 409),
    (InvalidStateTransition, 409),
    (ModeLocked, 409),
    (RemoteStoreError, 502),
]


def _status_for(exc: TaskTowerError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 422


def create_app(store: DocumentStore | None = None, settings: BackendSettings | None = None) -> FastAPI:
    backend_settings = settings if settings is not None else load_settings()
    document_store = store if store is not None else create_store(backend_settings)
    runtime = SessionRuntime(
        store=document_store,
        config=backend_settings.game_config(),
        sync_interval=backend_settings.sync_interval,
        tick_interval=backend_settings.tick_interval,
    )
    websocket_hub = DocumentWebSocketHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Task Tower API", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime
    app.state.websocket_hub = websocket_hub

    @app.exception_handler(TaskTowerError)
    async def handle_task_tower_error(request: Request, exc: TaskTowerError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"code": exc.code, "detail": str(exc), "details": exc.details},
        )

    def get_store() -> DocumentStore:
        return document_store

    # Remote document service

    @app.post("/api/documents", response_model=CreateDocumentResponse)
    def create_document(
        payload: CreateDocumentRequest,
        local_store: DocumentStore = Depends(get_store),
    ) -> CreateDocumentResponse:
        if local_store.get_document(payload.code) is not None:
            raise HTTPException(status_code=409, detail="Document already exists")
        created = local_store.create_document(payload.code, payload.snapshot)
        return CreateDocumentResponse(code=created.code, created_at=created.created_at)

    @app.get("/api/documents/{code}", response_model=DocumentResponse)
    def get_document(code: str, local_store: DocumentStore = Depends(get_store)) -> DocumentResponse:
        snapshot = local_store.get_document(code)
        if snapshot is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return DocumentResponse(snapshot=snapshot)

    @app.put("/api/documents/{code}", response_model=DocumentResponse)
    async def replace_document(
        code: str,
        payload: ReplaceDocumentRequest,
        local_store: DocumentStore = Depends(get_store),
    ) -> DocumentResponse:
        local_store.replace_document(code, payload.snapshot)
        await websocket_hub.broadcast_snapshot(code=code, snapshot=payload.snapshot)
        runtime.notify_remote_change(code)
        return DocumentResponse(snapshot=payload.snapshot)

    @app.websocket("/ws/documents/{code}")
    async def document_ws(
        websocket: WebSocket,
        code: str,
        local_store: DocumentStore = Depends(get_store),
    ) -> None:
        snapshot = local_store.get_document(code)
        if snapshot is None:
            await websocket.close(code=1008)
            return

        await websocket_hub.connect(code=code, websocket=websocket)
        await websocket_hub.send_snapshot(websocket=websocket, kind="document.full", snapshot=snapshot)

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(code=code, websocket=websocket)

    # Local lobby and session

    @app.post("/api/lobby", response_model=LobbyResponse)
    async def create_lobby(payload: CreateLobbyRequest) -> LobbyResponse:
        created = await runtime.create_lobby(online=payload.online)
        return LobbyResponse(
            code=created.code,
            role=created.role.value,
            online=created.online,
            participant_count=0,
        )

    @app.post("/api/lobby/join", response_model=LobbyResponse)
    async def join_lobby(payload: JoinLobbyRequest) -> LobbyResponse:
        info = await runtime.join_lobby(code=payload.code, online=payload.online)
        return LobbyResponse(
            code=info.code,
            role=info.role.value,
            online=info.online,
            participant_count=info.participant_count,
        )

    @app.delete("/api/lobby", response_model=LeaveLobbyResponse)
    async def leave_lobby() -> LeaveLobbyResponse:
        left = await runtime.leave_lobby()
        return LeaveLobbyResponse(was_in_lobby=left.was_in_lobby)

    @app.get("/api/lobby", response_model=LobbyResponse)
    def get_lobby() -> LobbyResponse:
        info = runtime.lobby.get_lobby_info()
        if info is None:
            raise HTTPException(status_code=404, detail="Not in a lobby")
        return LobbyResponse(
            code=info.code,
            role=info.role.value,
            online=info.online,
            participant_count=info.participant_count,
        )

    @app.get("/api/session", response_model=SessionStateResponse)
    def get_session() -> SessionStateResponse:
        return SessionStateResponse(state=runtime.session.snapshot())

    @app.get("/api/session/leaderboard")
    def get_leaderboard() -> dict[str, Any]:
        return {"leaderboard": [entry.as_dict() for entry in runtime.session.leaderboard()]}

    @app.get("/api/session/stats")
    def get_task_stats() -> dict[str, Any]:
        return {"stats": runtime.session.task_stats()}

    @app.post("/api/session/actions", response_model=ActionResponse)
    def post_action(payload: ActionEnvelope) -> ActionResponse:
        result = runtime.session.apply_action(payload.action)
        return ActionResponse(state=result.state, engine_events=result.engine_events)

    return app


app = create_app()
