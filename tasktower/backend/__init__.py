"""Backend package for the Task Tower session core."""

from .config import BackendSettings, GameConfig, load_settings
from .engine import ActionResult, GameSession
from .lobby import LobbyManager
from .state import build_initial_state
from .store import DocumentStore, HttpDocumentStore, InMemoryDocumentStore, PostgresDocumentStore, create_store
from .sync import SyncManager, SyncOutcome

__all__ = [
    "ActionResult",
    "BackendSettings",
    "build_initial_state",
    "create_store",
    "DocumentStore",
    "GameConfig",
    "GameSession",
    "HttpDocumentStore",
    "InMemoryDocumentStore",
    "load_settings",
    "LobbyManager",
    "PostgresDocumentStore",
    "SyncManager",
    "SyncOutcome",
]
