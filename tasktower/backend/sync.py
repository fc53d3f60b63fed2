"""Periodic push/pull reconciliation between a session and the remote store."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .engine import GameSession
from .errors import AlreadyRunning, InvalidSnapshot, RemoteSyncFailed
from .models import Role, utc_now_iso
from .scheduler import PeriodicTask
from .store import DocumentStore


logger = logging.getLogger(__name__)

SYNC_INTERVAL_S = 5.0

SnapshotProvider = Callable[[], dict[str, Any]]
SnapshotApplier = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class SyncOutcome:
    pushed: dict[str, Any] | None
    pulled: dict[str, Any] | None
    applied: bool
    error: RemoteSyncFailed | None = None


class SyncManager:
    """Best-effort convergence of one session with its remote document.

    A cycle pushes the local snapshot (full replace), pulls the remote one and
    hands it to ``apply_remote_snapshot`` when the two differ. The push is
    skipped while the local snapshot still equals the last synced one, and a
    guest that has never synced pulls before it ever pushes. Store failures
    are logged and retried on the next cycle.
    """

    def __init__(self, session: GameSession, store: DocumentStore, interval: float = SYNC_INTERVAL_S) -> None:
        self.session = session
        self.store = store
        self.interval = interval
        self.failure_count = 0
        self.cycle_count = 0
        self.last_error: RemoteSyncFailed | None = None
        self.last_synced_at: str | None = None
        self._job: PeriodicTask | None = None
        self._provider: SnapshotProvider | None = None
        self._apply: SnapshotApplier | None = None
        self._cache: dict[str, Any] | None = None
        self._last_synced: dict[str, Any] | None = None

    def start(self, snapshot_provider: SnapshotProvider, apply_remote_snapshot: SnapshotApplier) -> None:
        if self.is_syncing():
            raise AlreadyRunning()
        self._provider = snapshot_provider
        self._apply = apply_remote_snapshot
        self._last_synced = None
        self._job = PeriodicTask(name="sync-cycle", interval=self.interval, callback=self.run_cycle)
        self._job.start()
        logger.info("Sync started for lobby %s every %ss", self.session.lobby_code, self.interval)

    def stop(self) -> None:
        if self._job is None:
            return
        self._job.stop()
        self._job = None
        logger.info("Sync stopped for lobby %s", self.session.lobby_code)

    def is_syncing(self) -> bool:
        return self._job is not None and self._job.is_running

    def request_cycle(self) -> None:
        """Run the next cycle now instead of waiting out the interval."""
        if self._job is not None:
            self._job.trigger()

    async def run_cycle(self) -> SyncOutcome:
        if self._provider is None or self._apply is None:
            raise RuntimeError("run_cycle requires start() to register callbacks")
        self.cycle_count += 1
        code = self.session.lobby_code
        online = self.session.online and code is not None

        local = self._provider()
        pushed: dict[str, Any] | None = None
        if self._should_push(local):
            pushed = local

        try:
            if online:
                if pushed is not None:
                    await asyncio.to_thread(self.store.replace_document, code, pushed)
                pulled = await asyncio.to_thread(self.store.get_document, code)
            else:
                if pushed is not None:
                    self._cache = copy.deepcopy(pushed)
                pulled = copy.deepcopy(self._cache)
        except Exception as exc:
            error = RemoteSyncFailed(code, exc)
            self.failure_count += 1
            self.last_error = error
            logger.warning("Sync cycle %s for lobby %s failed: %s", self.cycle_count, code, exc)
            return SyncOutcome(pushed=pushed, pulled=None, applied=False, error=error)

        applied = False
        if pulled is not None and pulled != local:
            try:
                self._apply(pulled)
            except InvalidSnapshot as exc:
                logger.warning("Ignoring malformed snapshot for lobby %s: %s", code, exc)
                return SyncOutcome(pushed=pushed, pulled=pulled, applied=False)
            applied = True
            self._last_synced = copy.deepcopy(pulled)
            logger.info("Applied remote snapshot for lobby %s", code)
        elif pulled is not None:
            self._last_synced = copy.deepcopy(pulled)

        self.last_synced_at = utc_now_iso()
        logger.debug("Sync cycle %s for lobby %s: pushed=%s applied=%s", self.cycle_count, code, pushed is not None, applied)
        return SyncOutcome(pushed=pushed, pulled=pulled, applied=applied)

    def _should_push(self, local: dict[str, Any]) -> bool:
        if self._last_synced is None:
            return not (self.session.online and self.session.role is Role.GUEST)
        return local != self._last_synced
