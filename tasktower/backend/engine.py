"""Game state machine for one task tower session."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from .config import GameConfig
from .errors import (
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
from .models import (
    Category,
    Complexity,
    LeaderboardEntry,
    Participant,
    Phase,
    Role,
    Subtask,
    Task,
    TaskStatus,
    utc_now_iso,
)
from .scoring import build_leaderboard, build_task_stats, find_winners
from .state import build_snapshot, parse_header, parse_participants


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    state: dict[str, Any]
    engine_events: list[dict[str, Any]]


def _coerce_category(value: Category | str) -> Category:
    try:
        return Category(str(value.value if isinstance(value, Category) else value).lower())
    except ValueError as exc:
        raise InvalidTask(f"Unknown category {value!r}") from exc


def _coerce_complexity(value: Complexity | str) -> Complexity:
    try:
        return Complexity(str(value.value if isinstance(value, Complexity) else value).lower())
    except ValueError as exc:
        raise InvalidTask(f"Unknown complexity {value!r}") from exc


class GameSession:
    """Owns the round, phase, timer, roster and tasks of one session.

    Every public method takes the session lock, so a sync cycle reading or
    replacing the snapshot never interleaves with a multi-step mutation.
    """

    def __init__(self, config: GameConfig | None = None) -> None:
        self.config = config if config is not None else GameConfig()
        self.lobby_code: str | None = None
        self.role: Role | None = None
        self.online = False
        self._lock = threading.RLock()
        self._reset_game_state()

    def _reset_game_state(self) -> None:
        self.phase = Phase.SETUP
        self.round = 1
        self.total_rounds = self.config.max_rounds
        self.timer = 0
        self.paused = False
        self._participants: dict[int, Participant] = {}
        self._ledger: dict[int, set[str]] = {}
        self._next_participant_id = 1
        self._next_task_id = 1

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def is_terminal(self) -> bool:
        return self.phase is Phase.GAME_OVER

    def _require_active(self, operation: str) -> None:
        if self.phase is Phase.GAME_OVER:
            raise InvalidPhaseTransition(f"{operation} is not allowed after the game is over", {"phase": self.phase.value})

    def _require_host(self, operation: str) -> None:
        if self.role is Role.GUEST:
            raise HostOnlyOperation(operation)

    def _set_phase(self, phase: Phase, timer: int) -> dict[str, Any]:
        previous = self.phase
        self.phase = phase
        self.timer = timer
        logger.info("Session %s round %s: %s -> %s", self.lobby_code, self.round, previous.value, phase.value)
        return {"kind": "phase_changed", "from": previous.value, "to": phase.value, "round": self.round}

    def _begin_work_phase(self) -> list[dict[str, Any]]:
        self.paused = False
        self._ledger = {participant_id: set() for participant_id in self._participants}
        events = [self._set_phase(Phase.WORK, self.config.round_seconds)]
        events.append({"kind": "round_started", "round": self.round})
        return events

    def _finish_game(self) -> list[dict[str, Any]]:
        self.paused = False
        events = [self._set_phase(Phase.GAME_OVER, 0)]
        events.append({"kind": "game_over", "winners": [p.id for p in find_winners(self._participants.values())]})
        return events

    def _next_round_or_finish(self) -> list[dict[str, Any]]:
        if self.round < self.total_rounds:
            self.round += 1
            return self._begin_work_phase()
        return self._finish_game()

    # Phase control

    def advance_tick(self) -> list[dict[str, Any]]:
        """Advance the phase timer by one second."""
        with self._lock:
            if self.phase in (Phase.SETUP, Phase.GAME_OVER) or self.paused:
                return []
            if self.timer > 0:
                self.timer -= 1
            if self.timer > 0:
                return []
            if self.phase is Phase.WORK:
                return [self._set_phase(Phase.BREAK, self.config.break_seconds)]
            return self._next_round_or_finish()

    def start_round(self) -> list[dict[str, Any]]:
        with self._lock:
            self._require_active("start_round")
            self._require_host("start_round")
            if self.phase is Phase.SETUP:
                return self._begin_work_phase()
            if self.phase is Phase.BREAK:
                return self._next_round_or_finish()
            raise InvalidPhaseTransition("A round is already in progress", {"phase": self.phase.value})

    def end_round(self) -> list[dict[str, Any]]:
        with self._lock:
            self._require_active("end_round")
            self._require_host("end_round")
            if self.phase is not Phase.WORK:
                raise InvalidPhaseTransition("No work phase to end", {"phase": self.phase.value})
            return [self._set_phase(Phase.BREAK, self.config.break_seconds)]

    def end_game(self) -> list[Participant]:
        with self._lock:
            self._require_active("end_game")
            self._require_host("end_game")
            self._finish_game()
            return copy.deepcopy(find_winners(self._participants.values()))

    def pause(self) -> None:
        with self._lock:
            self._require_active("pause")
            self._require_host("pause")
            if self.phase not in (Phase.WORK, Phase.BREAK):
                raise InvalidPhaseTransition("Only a running phase can be paused", {"phase": self.phase.value})
            self.paused = True

    def resume(self) -> None:
        with self._lock:
            self._require_active("resume")
            self._require_host("resume")
            self.paused = False

    def reset(self) -> None:
        """Return to a fresh setup phase, keeping the lobby identity."""
        with self._lock:
            self._reset_game_state()
            logger.info("Session %s reset", self.lobby_code)

    # Roster

    def add_participant(self, name: str) -> Participant:
        with self._lock:
            self._require_active("add_participant")
            clean_name = (name or "").strip()
            if not clean_name:
                raise InvalidParticipant("Participant name must not be empty")
            if len(self._participants) >= self.config.max_players:
                raise CapacityExceeded(
                    f"Maximum {self.config.max_players} players allowed",
                    {"maxPlayers": self.config.max_players},
                )
            participant = Participant(id=self._next_participant_id, name=clean_name)
            self._next_participant_id += 1
            self._participants[participant.id] = participant
            self._ledger[participant.id] = set()
            return copy.deepcopy(participant)

    def remove_participant(self, participant_id: int) -> None:
        with self._lock:
            self._require_active("remove_participant")
            if participant_id not in self._participants:
                raise NotFound(f"Participant {participant_id} not found", {"participantId": participant_id})
            del self._participants[participant_id]
            self._ledger.pop(participant_id, None)

    def _get_participant(self, participant_id: int) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise NotFound(f"Participant {participant_id} not found", {"participantId": participant_id})
        return participant

    def _get_task(self, task_id: int) -> Task:
        for participant in self._participants.values():
            for task in participant.tasks:
                if task.id == task_id:
                    return task
        raise NotFound(f"Task {task_id} not found", {"taskId": task_id})

    # Tasks

    def add_task(
        self,
        participant_id: int,
        description: str,
        category: Category | str,
        complexity: Complexity | str = Complexity.EASY,
    ) -> Task:
        with self._lock:
            self._require_active("add_task")
            participant = self._get_participant(participant_id)
            task = Task(
                id=self._next_task_id,
                owner_id=participant.id,
                description=(description or "").strip(),
                category=_coerce_category(category),
                complexity=_coerce_complexity(complexity),
            )
            self._next_task_id += 1
            participant.tasks.append(task)
            return copy.deepcopy(task)

    def start_task(self, task_id: int) -> Task:
        with self._lock:
            self._require_active("start_task")
            task = self._get_task(task_id)
            if task.status is not TaskStatus.PENDING:
                raise InvalidStateTransition(
                    f"Task {task_id} cannot start from {task.status.value}", {"status": task.status.value}
                )
            task.status = TaskStatus.IN_PROGRESS
            return copy.deepcopy(task)

    def update_task(
        self,
        task_id: int,
        description: str | None = None,
        category: Category | str | None = None,
        complexity: Complexity | str | None = None,
    ) -> Task:
        with self._lock:
            self._require_active("update_task")
            task = self._get_task(task_id)
            if task.is_completed:
                raise InvalidStateTransition(f"Task {task_id} is already completed", {"status": task.status.value})
            new_category = _coerce_category(category) if category is not None else task.category
            new_complexity = _coerce_complexity(complexity) if complexity is not None else task.complexity
            task.category = new_category
            task.complexity = new_complexity
            if description is not None:
                task.description = description.strip()
            return copy.deepcopy(task)

    def add_subtask(self, task_id: int, text: str) -> Subtask:
        with self._lock:
            self._require_active("add_subtask")
            task = self._get_task(task_id)
            if task.is_completed:
                raise InvalidStateTransition(f"Task {task_id} is already completed", {"status": task.status.value})
            subtask = Subtask(id=f"{task.id}-sub-{len(task.subtasks) + 1}", text=(text or "").strip())
            task.subtasks.append(subtask)
            return copy.deepcopy(subtask)

    def complete_subtask(self, task_id: int, subtask_id: str) -> Subtask:
        with self._lock:
            self._require_active("complete_subtask")
            task = self._get_task(task_id)
            for subtask in task.subtasks:
                if subtask.id == subtask_id:
                    subtask.completed = True
                    return copy.deepcopy(subtask)
            raise NotFound(f"Subtask {subtask_id} not found", {"taskId": task_id, "subtaskId": subtask_id})

    def complete_task(self, task_id: int) -> Task:
        """Complete a task and credit its owner exactly once."""
        with self._lock:
            self._require_active("complete_task")
            task = self._get_task(task_id)
            if task.status not in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
                raise InvalidStateTransition(
                    f"Task {task_id} cannot complete from {task.status.value}", {"status": task.status.value}
                )
            owner = self._get_participant(task.owner_id)
            action_key = f"complete:{task.id}"
            ledger = self._ledger.setdefault(owner.id, set())
            if action_key in ledger:
                raise InvalidStateTransition(f"Task {task_id} was already scored this round", {"taskId": task_id})

            task.status = TaskStatus.COMPLETED
            task.completed_at = utc_now_iso()
            owner.score += task.points
            ledger.add(action_key)
            return copy.deepcopy(task)

    # Read projections

    def participants(self) -> list[Participant]:
        with self._lock:
            return copy.deepcopy(list(self._participants.values()))

    def get_participant(self, participant_id: int) -> Participant:
        with self._lock:
            return copy.deepcopy(self._get_participant(participant_id))

    def tasks(self, participant_id: int | None = None) -> list[Task]:
        with self._lock:
            if participant_id is not None:
                return copy.deepcopy(self._get_participant(participant_id).tasks)
            return copy.deepcopy([task for participant in self._participants.values() for task in participant.tasks])

    def ledger(self) -> dict[int, set[str]]:
        with self._lock:
            return {participant_id: set(actions) for participant_id, actions in self._ledger.items()}

    def leaderboard(self) -> list[LeaderboardEntry]:
        with self._lock:
            return build_leaderboard(self._participants.values())

    def winners(self) -> list[Participant]:
        with self._lock:
            return copy.deepcopy(find_winners(self._participants.values()))

    def task_stats(self) -> dict[str, Any]:
        with self._lock:
            return build_task_stats(task for participant in self._participants.values() for task in participant.tasks)

    # Snapshot exchange

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return build_snapshot(
                lobby_code=self.lobby_code,
                phase=self.phase,
                round_number=self.round,
                total_rounds=self.total_rounds,
                timer=self.timer,
                paused=self.paused,
                participants=list(self._participants.values()),
            )

    def apply_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Replace local state wholesale with a remote snapshot."""
        phase, round_number, total_rounds, timer, paused = parse_header(snapshot)
        participants = parse_participants(snapshot)
        remote_code = snapshot.get("lobbyCode")
        with self._lock:
            if self.lobby_code is not None and remote_code is not None and remote_code != self.lobby_code:
                raise InvalidSnapshot(f"Snapshot belongs to lobby {remote_code}, not {self.lobby_code}")
            self.phase = phase
            self.round = round_number
            self.total_rounds = total_rounds
            self.timer = timer
            self.paused = paused
            self._participants = {participant.id: participant for participant in participants}
            self._ledger = {
                participant_id: self._ledger.get(participant_id, set()) for participant_id in self._participants
            }
            task_ids = [task.id for participant in participants for task in participant.tasks]
            self._next_participant_id = max([self._next_participant_id, *(p.id + 1 for p in participants)])
            self._next_task_id = max([self._next_task_id, *(task_id + 1 for task_id in task_ids)])

    # Action reducer

    def apply_action(self, action: dict[str, Any]) -> ActionResult:
        """Apply a UI action envelope and return the new snapshot plus engine events."""
        action_type = str(action.get("type", "")).upper()
        handler = _ACTION_HANDLERS.get(action_type)
        if handler is None:
            raise UnknownAction(action_type)
        with self._lock:
            events = handler(self, action)
            return ActionResult(state=self.snapshot(), engine_events=events)


def _int_field(action: dict[str, Any], key: str) -> int:
    try:
        return int(action[key])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTask(f"Action field {key} must be an integer") from exc


def _action_start_round(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    return session.start_round()


def _action_end_round(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    return session.end_round()


def _action_end_game(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    winners = session.end_game()
    return [{"kind": "game_over", "winners": [winner.id for winner in winners]}]


def _action_pause(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    session.pause()
    return [{"kind": "paused"}]


def _action_resume(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    session.resume()
    return [{"kind": "resumed"}]


def _action_reset(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    session.reset()
    return [{"kind": "reset"}]


def _action_tick(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    return session.advance_tick()


def _action_add_participant(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    participant = session.add_participant(str(action.get("name", "")))
    return [{"kind": "participant_added", "participantId": participant.id, "name": participant.name}]


def _action_remove_participant(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    participant_id = _int_field(action, "participantId")
    session.remove_participant(participant_id)
    return [{"kind": "participant_removed", "participantId": participant_id}]


def _action_add_task(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task = session.add_task(
        participant_id=_int_field(action, "participantId"),
        description=str(action.get("description", "")),
        category=str(action.get("category", "")),
        complexity=str(action.get("complexity", Complexity.EASY.value)),
    )
    return [{"kind": "task_added", "taskId": task.id, "participantId": task.owner_id, "points": task.points}]


def _action_start_task(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task = session.start_task(_int_field(action, "taskId"))
    return [{"kind": "task_started", "taskId": task.id}]


def _action_update_task(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task = session.update_task(
        task_id=_int_field(action, "taskId"),
        description=action.get("description"),
        category=action.get("category"),
        complexity=action.get("complexity"),
    )
    return [{"kind": "task_updated", "taskId": task.id, "points": task.points}]


def _action_add_subtask(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task_id = _int_field(action, "taskId")
    subtask = session.add_subtask(task_id, str(action.get("text", "")))
    return [{"kind": "subtask_added", "taskId": task_id, "subtaskId": subtask.id}]


def _action_complete_subtask(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task_id = _int_field(action, "taskId")
    subtask = session.complete_subtask(task_id, str(action.get("subtaskId", "")))
    return [{"kind": "subtask_completed", "taskId": task_id, "subtaskId": subtask.id}]


def _action_complete_task(session: GameSession, action: dict[str, Any]) -> list[dict[str, Any]]:
    task = session.complete_task(_int_field(action, "taskId"))
    return [{"kind": "task_completed", "taskId": task.id, "participantId": task.owner_id, "points": task.points}]


_ACTION_HANDLERS: dict[str, Callable[[GameSession, dict[str, Any]], list[dict[str, Any]]]] = {
    "START_ROUND": _action_start_round,
    "END_ROUND": _action_end_round,
    "END_GAME": _action_end_game,
    "PAUSE": _action_pause,
    "RESUME": _action_resume,
    "RESET": _action_reset,
    "TICK": _action_tick,
    "ADD_PARTICIPANT": _action_add_participant,
    "REMOVE_PARTICIPANT": _action_remove_participant,
    "ADD_TASK": _action_add_task,
    "START_TASK": _action_start_task,
    "UPDATE_TASK": _action_update_task,
    "ADD_SUBTASK": _action_add_subtask,
    "COMPLETE_SUBTASK": _action_complete_subtask,
    "COMPLETE_TASK": _action_complete_task,
}
