"""Aggregate score queries over a participant roster."""

from __future__ import annotations

from typing import Any, Iterable

from .models import Category, Complexity, LeaderboardEntry, Participant, Task


def build_leaderboard(participants: Iterable[Participant]) -> list[LeaderboardEntry]:
    """Rank participants by score; equal scores share a rank."""
    ordered = sorted(participants, key=lambda participant: (-participant.score, participant.id))
    entries: list[LeaderboardEntry] = []
    rank = 0
    previous_score: int | None = None
    for participant in ordered:
        if participant.score != previous_score:
            rank += 1
            previous_score = participant.score
        entries.append(
            LeaderboardEntry(
                rank=rank,
                participant_id=participant.id,
                name=participant.name,
                score=participant.score,
                tasks_completed=sum(1 for task in participant.tasks if task.is_completed),
            )
        )
    return entries


def find_winners(participants: Iterable[Participant]) -> list[Participant]:
    roster = list(participants)
    if not roster:
        return []
    top_score = max(participant.score for participant in roster)
    return [participant for participant in roster if participant.score == top_score]


def build_task_stats(tasks: Iterable[Task]) -> dict[str, Any]:
    by_category = {category.value: {"total": 0, "completed": 0} for category in Category}
    by_complexity = {complexity.value: {"total": 0, "completed": 0} for complexity in Complexity}
    total = 0
    completed = 0
    points_earned = 0
    for task in tasks:
        total += 1
        by_category[task.category.value]["total"] += 1
        by_complexity[task.complexity.value]["total"] += 1
        if task.is_completed:
            completed += 1
            points_earned += task.points
            by_category[task.category.value]["completed"] += 1
            by_complexity[task.complexity.value]["completed"] += 1
    return {
        "totalTasks": total,
        "completedTasks": completed,
        "pointsEarned": points_earned,
        "byCategory": by_category,
        "byComplexity": by_complexity,
    }
