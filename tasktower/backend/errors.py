"""Error types raised by the session core."""

from __future__ import annotations

from typing import Any


class TaskTowerError(Exception):
    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = details


class InvalidPhaseTransition(TaskTowerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("invalid_phase_transition", message, details)


class InvalidStateTransition(TaskTowerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("invalid_state_transition", message, details)


class NotFound(TaskTowerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("not_found", message, details)


class CapacityExceeded(TaskTowerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("capacity_exceeded", message, details)


class InvalidConfiguration(TaskTowerError):
    def __init__(self, errors: list[str]):
        super().__init__("invalid_configuration", "; ".join(errors), {"errors": list(errors)})
        self.errors = list(errors)


class InvalidCode(TaskTowerError):
    def __init__(self, message: str = "Invalid lobby code"):
        super().__init__("invalid_code", message)


class InvalidParticipant(TaskTowerError, ValueError):
    def __init__(self, message: str):
        super().__init__("invalid_participant", message)


class InvalidTask(TaskTowerError):
    def __init__(self, message: str):
        super().__init__("invalid_task", message)


class HostOnlyOperation(TaskTowerError):
    def __init__(self, operation: str):
        super().__init__("host_only", f"{operation} may only be called by the host", {"operation": operation})


class ModeLocked(TaskTowerError):
    def __init__(self, message: str = "Online/offline mode cannot change while a lobby is active"):
        super().__init__("mode_locked", message)


class UnknownAction(TaskTowerError):
    def __init__(self, action_type: str):
        super().__init__("unknown_action", f"Unknown action type: {action_type!r}", {"type": action_type})


class InvalidSnapshot(TaskTowerError):
    def __init__(self, message: str):
        super().__init__("invalid_snapshot", message)


class AlreadyRunning(TaskTowerError):
    def __init__(self, message: str = "Sync already running"):
        super().__init__("already_running", message)


class RemoteStoreError(TaskTowerError):
    pass


class RemoteProvisioningFailed(RemoteStoreError):
    def __init__(self, code: str, cause: BaseException):
        super().__init__("remote_provisioning_failed", f"Could not provision remote document {code}: {cause}")
        self.lobby_code = code
        self.cause = cause


class RemoteSyncFailed(RemoteStoreError):
    def __init__(self, code: str | None, cause: BaseException):
        super().__init__("remote_sync_failed", f"Sync with remote document {code} failed: {cause}")
        self.lobby_code = code
        self.cause = cause
