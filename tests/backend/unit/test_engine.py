import pytest

from tasktower.backend.config import GameConfig
from tasktower.backend.engine import GameSession
from tasktower.backend.errors import (
    CapacityExceeded,
    HostOnlyOperation,
    InvalidParticipant,
    InvalidPhaseTransition,
    InvalidSnapshot,
    InvalidStateTransition,
    InvalidTask,
    NotFound,
    UnknownAction,
)
from tasktower.backend.models import Phase, Role, TaskStatus


def _short_session(max_rounds: int = 2, max_players: int = 8) -> GameSession:
    return GameSession(GameConfig(max_players=max_players, max_rounds=max_rounds, round_time=1, break_time=1))


def _tick(session: GameSession, count: int) -> list[dict]:
    events: list[dict] = []
    for _ in range(count):
        events.extend(session.advance_tick())
    return events


def test_fresh_session_starts_in_setup() -> None:
    session = GameSession()

    assert session.phase is Phase.SETUP
    assert session.round == 1
    assert session.timer == 0
    assert session.participants() == []
    assert session.is_terminal is False


def test_ticks_in_setup_do_nothing() -> None:
    session = _short_session()

    assert _tick(session, 5) == []
    assert session.phase is Phase.SETUP
    assert session.timer == 0


def test_full_game_walks_work_break_rounds_until_game_over() -> None:
    session = _short_session(max_rounds=2)
    ada = session.add_participant("Ada")
    task = session.add_task(ada.id, "Ship release", "work", "hard")
    session.complete_task(task.id)
    assert session.get_participant(ada.id).score == 6

    events = session.start_round()
    assert session.phase is Phase.WORK
    assert session.timer == 60
    assert {"kind": "round_started", "round": 1} in events

    _tick(session, 59)
    assert session.phase is Phase.WORK
    assert session.timer == 1

    events = _tick(session, 1)
    assert session.phase is Phase.BREAK
    assert session.timer == 60
    assert events == [{"kind": "phase_changed", "from": "work", "to": "break", "round": 1}]

    _tick(session, 60)
    assert session.phase is Phase.WORK
    assert session.round == 2

    events = _tick(session, 120)
    assert session.phase is Phase.GAME_OVER
    assert session.is_terminal is True
    assert {"kind": "game_over", "winners": [ada.id]} in events

    assert _tick(session, 10) == []
    assert session.phase is Phase.GAME_OVER
    assert session.get_participant(ada.id).score == 6


def test_paused_session_does_not_tick() -> None:
    session = _short_session()
    session.start_round()
    session.pause()

    _tick(session, 10)
    assert session.timer == 60

    session.resume()
    _tick(session, 10)
    assert session.timer == 50


def test_start_round_from_break_advances_round() -> None:
    session = _short_session(max_rounds=2)
    session.start_round()
    session.end_round()
    assert session.phase is Phase.BREAK

    session.start_round()

    assert session.phase is Phase.WORK
    assert session.round == 2


def test_start_round_during_work_is_rejected() -> None:
    session = _short_session()
    session.start_round()

    with pytest.raises(InvalidPhaseTransition):
        session.start_round()


def test_start_round_from_last_break_finishes_game() -> None:
    session = _short_session(max_rounds=1)
    session.start_round()
    session.end_round()

    session.start_round()

    assert session.phase is Phase.GAME_OVER


def test_task_completion_credits_owner_exactly_once() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")
    task = session.add_task(ada.id, "Laundry", "chores", "moderate")
    session.start_round()

    completed = session.complete_task(task.id)

    assert completed.status is TaskStatus.COMPLETED
    assert completed.completed_at is not None
    assert session.get_participant(ada.id).score == 3
    assert f"complete:{task.id}" in session.ledger()[ada.id]

    with pytest.raises(InvalidStateTransition):
        session.complete_task(task.id)
    assert session.get_participant(ada.id).score == 3


def test_task_lifecycle_with_subtasks_and_updates() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")
    task = session.add_task(ada.id, "Journal", "personal", "easy")
    assert task.points == 1

    updated = session.update_task(task.id, category="chores", complexity="moderate")
    assert updated.points == 3

    started = session.start_task(task.id)
    assert started.status is TaskStatus.IN_PROGRESS
    with pytest.raises(InvalidStateTransition):
        session.start_task(task.id)

    subtask = session.add_subtask(task.id, "Buy notebook")
    assert subtask.id == f"{task.id}-sub-1"
    assert session.complete_subtask(task.id, subtask.id).completed is True
    with pytest.raises(NotFound):
        session.complete_subtask(task.id, "missing")

    session.complete_task(task.id)
    with pytest.raises(InvalidStateTransition):
        session.update_task(task.id, description="Later")


def test_add_task_rejects_unknown_category() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")

    with pytest.raises(InvalidTask):
        session.add_task(ada.id, "Knit", "hobby")


def test_add_participant_validates_name_and_capacity() -> None:
    session = _short_session(max_players=2)

    with pytest.raises(InvalidParticipant):
        session.add_participant("   ")

    session.add_participant("Ada")
    session.add_participant("Bo")
    with pytest.raises(CapacityExceeded):
        session.add_participant("Cy")

    assert [participant.name for participant in session.participants()] == ["Ada", "Bo"]


def test_remove_participant_drops_them_from_leaderboard() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")
    bo = session.add_participant("Bo")
    task = session.add_task(bo.id, "Report", "work", "easy")
    session.complete_task(task.id)

    session.remove_participant(bo.id)

    leaderboard = session.leaderboard()
    assert [entry.participant_id for entry in leaderboard] == [ada.id]
    assert bo.id not in session.ledger()
    assert session.tasks() == []
    with pytest.raises(NotFound):
        session.remove_participant(bo.id)


def test_leaderboard_shares_rank_between_equal_scores() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")
    bo = session.add_participant("Bo")
    cy = session.add_participant("Cy")
    for participant in (ada, bo):
        session.complete_task(session.add_task(participant.id, "Dishes", "chores", "easy").id)

    ranks = [(entry.name, entry.rank) for entry in session.leaderboard()]

    assert ranks == [("Ada", 1), ("Bo", 1), ("Cy", 2)]
    assert {winner.id for winner in session.winners()} == {ada.id, bo.id}
    assert cy.id not in {winner.id for winner in session.winners()}


def test_task_stats_counts_by_category_and_complexity() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")
    done = session.add_task(ada.id, "Report", "work", "moderate")
    session.add_task(ada.id, "Dishes", "chores", "easy")
    session.complete_task(done.id)

    stats = session.task_stats()

    assert stats["totalTasks"] == 2
    assert stats["completedTasks"] == 1
    assert stats["pointsEarned"] == 5
    assert stats["byCategory"]["work"] == {"total": 1, "completed": 1}
    assert stats["byComplexity"]["easy"] == {"total": 1, "completed": 0}


def test_guest_cannot_drive_phases() -> None:
    session = _short_session()
    session.role = Role.GUEST

    with pytest.raises(HostOnlyOperation):
        session.start_round()
    with pytest.raises(HostOnlyOperation):
        session.pause()

    participant = session.add_participant("Ada")
    assert participant.name == "Ada"


def test_mutations_after_game_over_are_rejected() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")

    winners = session.end_game()

    assert [winner.id for winner in winners] == [ada.id]
    with pytest.raises(InvalidPhaseTransition):
        session.add_participant("Bo")
    with pytest.raises(InvalidPhaseTransition):
        session.add_task(ada.id, "Late", "work")
    with pytest.raises(InvalidPhaseTransition):
        session.start_round()


def test_end_game_with_empty_roster_has_no_winners() -> None:
    session = _short_session()

    assert session.end_game() == []
    assert session.phase is Phase.GAME_OVER


def test_reset_returns_to_setup_and_keeps_lobby_identity() -> None:
    session = _short_session()
    session.lobby_code = "ABC123"
    session.role = Role.HOST
    session.add_participant("Ada")
    session.start_round()

    session.reset()

    assert session.phase is Phase.SETUP
    assert session.participants() == []
    assert session.lobby_code == "ABC123"
    assert session.role is Role.HOST


def test_projections_are_copies() -> None:
    session = _short_session()
    ada = session.add_participant("Ada")

    session.participants()[0].score = 99
    session.get_participant(ada.id).name = "Eve"

    assert session.get_participant(ada.id).score == 0
    assert session.get_participant(ada.id).name == "Ada"


def test_snapshot_round_trips_into_another_session() -> None:
    source = _short_session()
    ada = source.add_participant("Ada")
    task = source.add_task(ada.id, "Report", "work", "hard")
    source.complete_task(task.id)
    source.start_round()

    target = _short_session()
    target.apply_snapshot(source.snapshot())

    assert target.snapshot() == source.snapshot()
    assert target.phase is Phase.WORK
    newcomer = target.add_participant("Bo")
    assert newcomer.id == ada.id + 1
    new_task = target.add_task(newcomer.id, "Dishes", "chores")
    assert new_task.id == task.id + 1


def test_apply_snapshot_rejects_other_lobby_and_leaves_state() -> None:
    session = _short_session()
    session.lobby_code = "ABC123"
    session.add_participant("Ada")
    foreign = _short_session()
    foreign.lobby_code = "ZZZ999"

    with pytest.raises(InvalidSnapshot):
        session.apply_snapshot(foreign.snapshot())

    assert [participant.name for participant in session.participants()] == ["Ada"]


def test_apply_snapshot_rejects_malformed_header() -> None:
    session = _short_session()
    snapshot = session.snapshot()
    snapshot["timer"] = -5

    with pytest.raises(InvalidSnapshot):
        session.apply_snapshot(snapshot)


def test_apply_action_dispatches_and_returns_events() -> None:
    session = _short_session()

    added = session.apply_action({"type": "add_participant", "name": "Ada"})
    participant_id = added.engine_events[0]["participantId"]
    task_result = session.apply_action(
        {"type": "ADD_TASK", "participantId": participant_id, "description": "Report", "category": "work"}
    )
    task_id = task_result.engine_events[0]["taskId"]
    completed = session.apply_action({"type": "COMPLETE_TASK", "taskId": task_id})

    assert completed.engine_events == [
        {"kind": "task_completed", "taskId": task_id, "participantId": participant_id, "points": 3}
    ]
    assert completed.state["participants"][0]["score"] == 3

    started = session.apply_action({"type": "START_ROUND"})
    assert started.state["phase"] == "work"


def test_apply_action_rejects_unknown_type() -> None:
    session = _short_session()

    with pytest.raises(UnknownAction):
        session.apply_action({"type": "DANCE"})


def test_apply_action_rejects_non_integer_ids() -> None:
    session = _short_session()

    with pytest.raises(InvalidTask):
        session.apply_action({"type": "COMPLETE_TASK", "taskId": "abc"})


def test_apply_snapshot_rejects_non_object_tasks() -> None:
    session = _short_session()
    session.add_participant("Bo")
    snapshot = session.snapshot()
    snapshot["participants"] = [{"id": 1, "name": "Ada", "score": 0, "tasks": ["oops"]}]

    with pytest.raises(InvalidSnapshot):
        session.apply_snapshot(snapshot)

    assert [participant.name for participant in session.participants()] == ["Bo"]


def test_start_round_after_paused_break_runs_unpaused() -> None:
    session = _short_session(max_rounds=2)
    session.start_round()
    session.end_round()
    session.pause()

    session.start_round()
    _tick(session, 5)

    assert session.phase is Phase.WORK
    assert session.round == 2
    assert session.paused is False
    assert session.timer == 55
