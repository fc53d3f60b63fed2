"""Snapshot builders and parsers for session exchange."""

from __future__ import annotations

from typing import Any

from .errors import InvalidSnapshot
from .models import Category, Complexity, Participant, Phase, Subtask, Task, TaskStatus


def build_initial_state(lobby_code: str | None, total_rounds: int = 1) -> dict[str, Any]:
    """Return the snapshot of a freshly created session."""
    return {
        "lobbyCode": lobby_code,
        "phase": Phase.SETUP.value,
        "round": 1,
        "totalRounds": total_rounds,
        "timer": 0,
        "paused": False,
        "participants": [],
    }


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "description": task.description,
        "category": task.category.value,
        "complexity": task.complexity.value,
        "points": task.points,
        "status": task.status.value,
        "createdAt": task.created_at,
        "completedAt": task.completed_at,
        "subtasks": [
            {"id": subtask.id, "text": subtask.text, "completed": subtask.completed} for subtask in task.subtasks
        ],
    }


def participant_to_dict(participant: Participant) -> dict[str, Any]:
    return {
        "id": participant.id,
        "name": participant.name,
        "score": participant.score,
        "joinedAt": participant.joined_at,
        "tasks": [task_to_dict(task) for task in participant.tasks],
    }


def build_snapshot(
    lobby_code: str | None,
    phase: Phase,
    round_number: int,
    total_rounds: int,
    timer: int,
    paused: bool,
    participants: list[Participant],
) -> dict[str, Any]:
    snapshot = build_initial_state(lobby_code=lobby_code, total_rounds=total_rounds)
    snapshot["phase"] = phase.value
    snapshot["round"] = round_number
    snapshot["timer"] = timer
    snapshot["paused"] = paused
    snapshot["participants"] = [participant_to_dict(participant) for participant in participants]
    return snapshot


def parse_participants(snapshot: dict[str, Any]) -> list[Participant]:
    """Rebuild participants and their tasks from a snapshot."""
    raw_participants = snapshot.get("participants", [])
    if not isinstance(raw_participants, list):
        raise InvalidSnapshot("participants must be a list")

    participants: list[Participant] = []
    for raw in raw_participants:
        if not isinstance(raw, dict):
            raise InvalidSnapshot("participant entries must be objects")
        try:
            participant_id = int(raw["id"])
            participant = Participant(
                id=participant_id,
                name=str(raw["name"]),
                score=int(raw.get("score", 0)),
                joined_at=str(raw.get("joinedAt", "")),
            )
            participant.tasks = [_parse_task(raw_task, participant_id) for raw_task in raw.get("tasks", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSnapshot(f"malformed participant entry: {exc}") from exc
        if participant.score < 0:
            raise InvalidSnapshot(f"participant {participant_id} has a negative score")
        participants.append(participant)
    return participants


def _parse_task(raw: Any, owner_id: int) -> Task:
    if not isinstance(raw, dict):
        raise InvalidSnapshot(f"task entries of participant {owner_id} must be objects")
    status = TaskStatus(raw.get("status", TaskStatus.PENDING.value))
    completed_at = raw.get("completedAt")
    if (status is TaskStatus.COMPLETED) != (completed_at is not None):
        raise ValueError(f"task {raw.get('id')} has inconsistent completion timestamp")
    task = Task(
        id=int(raw["id"]),
        owner_id=owner_id,
        description=str(raw.get("description", "")),
        category=Category(raw["category"]),
        complexity=Complexity(raw.get("complexity", Complexity.EASY.value)),
        status=status,
        created_at=str(raw.get("createdAt", "")),
        completed_at=completed_at,
    )
    task.subtasks = [_parse_subtask(sub, task.id) for sub in raw.get("subtasks", [])]
    return task


def _parse_subtask(raw: Any, task_id: int) -> Subtask:
    if not isinstance(raw, dict):
        raise InvalidSnapshot(f"subtask entries of task {task_id} must be objects")
    return Subtask(id=str(raw["id"]), text=str(raw.get("text", "")), completed=bool(raw.get("completed", False)))


def parse_header(snapshot: dict[str, Any]) -> tuple[Phase, int, int, int, bool]:
    """Return (phase, round, total rounds, timer, paused) from a snapshot."""
    if not isinstance(snapshot, dict):
        raise InvalidSnapshot("snapshot must be an object")
    try:
        phase = Phase(snapshot["phase"])
        round_number = int(snapshot["round"])
        total_rounds = int(snapshot.get("totalRounds", round_number))
        timer = int(snapshot["timer"])
        paused = bool(snapshot.get("paused", False))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidSnapshot(f"malformed snapshot header: {exc}") from exc
    if timer < 0:
        raise InvalidSnapshot("timer must not be negative")
    if total_rounds < 1 or not 1 <= round_number <= total_rounds:
        raise InvalidSnapshot(f"round {round_number} outside 1..{total_rounds}")
    return phase, round_number, total_rounds, timer, paused
