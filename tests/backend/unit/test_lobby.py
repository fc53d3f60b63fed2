import pytest

from tasktower.backend.config import GameConfig
from tasktower.backend.engine import GameSession
from tasktower.backend.errors import InvalidCode, ModeLocked, RemoteProvisioningFailed
from tasktower.backend.lobby import LobbyManager
from tasktower.backend.models import Phase, Role
from tasktower.backend.state import build_initial_state
from tasktower.backend.store import InMemoryDocumentStore


class _UnreachableStore(InMemoryDocumentStore):
    def create_document(self, code, snapshot):
        raise ConnectionError("remote store unreachable")


def _manager(store=None, online: bool = False) -> LobbyManager:
    manager = LobbyManager(session=GameSession(GameConfig(max_rounds=3)), store=store or InMemoryDocumentStore())
    manager.set_mode(online)
    return manager


def test_create_local_lobby_makes_session_host() -> None:
    store = InMemoryDocumentStore()
    manager = _manager(store=store, online=False)

    created = manager.create_lobby()

    assert len(created.code) == 6
    assert created.code == created.code.upper()
    assert created.role is Role.HOST
    assert created.online is False
    assert created.document is None
    assert manager.session.lobby_code == created.code
    assert manager.session.phase is Phase.SETUP
    assert store.get_document(created.code) is None


def test_create_online_lobby_provisions_initial_document() -> None:
    store = InMemoryDocumentStore()
    manager = _manager(store=store, online=True)

    created = manager.create_lobby()

    assert created.online is True
    assert created.document is not None
    assert created.document.code == created.code
    assert store.get_document(created.code) == build_initial_state(lobby_code=created.code, total_rounds=3)
    assert manager.session.snapshot() == store.get_document(created.code)


def test_create_online_lobby_reports_provisioning_failure() -> None:
    manager = _manager(store=_UnreachableStore(), online=True)
    ada = manager.session.add_participant("Ada")

    with pytest.raises(RemoteProvisioningFailed) as excinfo:
        manager.create_lobby()

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert manager.session.lobby_code is None
    assert manager.session.role is None
    assert manager.get_lobby_info() is None
    assert manager.session.get_participant(ada.id).name == "Ada"


def test_create_lobby_resets_previous_game() -> None:
    manager = _manager()
    manager.session.add_participant("Ada")

    manager.create_lobby()

    assert manager.session.participants() == []


@pytest.mark.parametrize("code", ["", "ab", "ABC-12", "   "])
def test_join_lobby_rejects_invalid_codes(code) -> None:
    manager = _manager()

    with pytest.raises(InvalidCode):
        manager.join_lobby(code)

    assert manager.get_lobby_info() is None


def test_join_lobby_normalizes_code_and_sets_guest() -> None:
    manager = _manager(online=True)

    info = manager.join_lobby(" abc123 ")

    assert info.code == "ABC123"
    assert info.role is Role.GUEST
    assert info.online is True
    assert info.participant_count == 0


def test_leave_lobby_is_idempotent() -> None:
    manager = _manager()
    created = manager.create_lobby()

    first = manager.leave_lobby()
    second = manager.leave_lobby()

    assert first.was_in_lobby is True
    assert first.code == created.code
    assert second.was_in_lobby is False
    assert manager.session.lobby_code is None
    assert manager.session.role is None


def test_lobby_info_counts_participants() -> None:
    manager = _manager()
    assert manager.get_lobby_info() is None

    created = manager.create_lobby()
    manager.session.add_participant("Ada")
    manager.session.add_participant("Bo")

    info = manager.get_lobby_info()
    assert info is not None
    assert info.code == created.code
    assert info.role is Role.HOST
    assert info.participant_count == 2


def test_mode_is_locked_while_in_lobby() -> None:
    manager = _manager(online=False)
    manager.create_lobby()

    with pytest.raises(ModeLocked):
        manager.set_mode(True)
    manager.set_mode(False)

    manager.leave_lobby()
    manager.set_mode(True)
    assert manager.session.online is True


def test_create_online_lobby_skips_codes_already_in_store(monkeypatch) -> None:
    store = InMemoryDocumentStore()
    store.create_document("TAKEN1", build_initial_state(lobby_code="TAKEN1"))
    codes = iter(["TAKEN1", "FRESH1"])
    monkeypatch.setattr("tasktower.backend.lobby.generate_lobby_code", lambda: next(codes))
    manager = _manager(store=store, online=True)

    created = manager.create_lobby()

    assert created.code == "FRESH1"
    assert store.get_document("FRESH1") == build_initial_state(lobby_code="FRESH1", total_rounds=3)
    assert store.get_document("TAKEN1") == build_initial_state(lobby_code="TAKEN1")
