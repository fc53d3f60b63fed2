"""Domain models for sessions, participants and tasks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Phase(str, Enum):
    SETUP = "setup"
    WORK = "work"
    BREAK = "break"
    GAME_OVER = "game-over"


class Role(str, Enum):
    HOST = "host"
    GUEST = "guest"


class Category(str, Enum):
    PERSONAL = "personal"
    CHORES = "chores"
    WORK = "work"


class Complexity(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


CATEGORY_BASE_POINTS = {
    Category.PERSONAL: 1,
    Category.CHORES: 2,
    Category.WORK: 3,
}

COMPLEXITY_MULTIPLIERS = {
    Complexity.EASY: 1.0,
    Complexity.MODERATE: 1.5,
    Complexity.HARD: 2.0,
}


def calculate_points(category: Category, complexity: Complexity) -> int:
    """Base points for the category times the complexity multiplier, rounded half up."""
    raw = CATEGORY_BASE_POINTS[category] * COMPLEXITY_MULTIPLIERS[complexity]
    return int(math.floor(raw + 0.5))


@dataclass
class Subtask:
    id: str
    text: str
    completed: bool = False


@dataclass
class Task:
    id: int
    owner_id: int
    description: str
    category: Category
    complexity: Complexity
    status: TaskStatus = TaskStatus.PENDING
    subtasks: list[Subtask] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)
    completed_at: str | None = None

    @property
    def points(self) -> int:
        return calculate_points(self.category, self.complexity)

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED


@dataclass
class Participant:
    id: int
    name: str
    score: int = 0
    tasks: list[Task] = field(default_factory=list)
    joined_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class LobbyInfo:
    code: str
    role: Role
    online: bool
    participant_count: int


@dataclass(frozen=True)
class DocumentRef:
    code: str
    created_at: str
    url: str | None = None


@dataclass(frozen=True)
class CreatedLobby:
    code: str
    role: Role
    online: bool
    document: DocumentRef | None


@dataclass(frozen=True)
class LeftLobby:
    was_in_lobby: bool
    code: str | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    participant_id: int
    name: str
    score: int
    tasks_completed: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "participantId": self.participant_id,
            "name": self.name,
            "score": self.score,
            "tasksCompleted": self.tasks_completed,
        }
