"""Configuration helpers for backend runtime and game sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

from .errors import InvalidConfiguration


MAX_PLAYERS_LIMIT = 50
MAX_ROUNDS_LIMIT = 100
ROUND_TIME_RANGE = (1, 60)
BREAK_TIME_RANGE = (1, 30)

_CAMEL_KEYS = {
    "maxPlayers": "max_players",
    "maxRounds": "max_rounds",
    "roundTime": "round_time",
    "breakTime": "break_time",
}


@dataclass(frozen=True)
class GameConfig:
    """Session parameters; durations are in minutes."""

    max_players: int = 8
    max_rounds: int = 20
    round_time: int = 25
    break_time: int = 5

    def __post_init__(self) -> None:
        errors = validate_game_config(self)
        if errors:
            raise InvalidConfiguration(errors)

    @property
    def round_seconds(self) -> int:
        return self.round_time * 60

    @property
    def break_seconds(self) -> int:
        return self.break_time * 60

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "GameConfig":
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in _CAMEL_KEYS.values():
                raise InvalidConfiguration([f"Unknown setting {key}"])
            kwargs[name] = value
        return cls(**kwargs)


def validate_game_config(config: GameConfig) -> list[str]:
    errors: list[str] = []
    for name in ("max_players", "max_rounds", "round_time", "break_time"):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            errors.append(f"Invalid value for {name}")
    if errors:
        return errors

    if config.max_players > MAX_PLAYERS_LIMIT:
        errors.append(f"max_players must be at most {MAX_PLAYERS_LIMIT}")
    if config.max_rounds > MAX_ROUNDS_LIMIT:
        errors.append(f"max_rounds must be at most {MAX_ROUNDS_LIMIT}")
    low, high = ROUND_TIME_RANGE
    if not low <= config.round_time <= high:
        errors.append(f"Round time must be between {low} and {high} minutes")
    low, high = BREAK_TIME_RANGE
    if not low <= config.break_time <= high:
        errors.append(f"Break time must be between {low} and {high} minutes")
    return errors


@dataclass(frozen=True)
class BackendSettings:
    database_url: str | None
    remote_url: str | None
    host: str
    port: int
    sync_interval: float
    tick_interval: float
    log_level: str
    max_players: int
    max_rounds: int
    round_time: int
    break_time: int

    def game_config(self) -> GameConfig:
        return GameConfig(
            max_players=self.max_players,
            max_rounds=self.max_rounds,
            round_time=self.round_time,
            break_time=self.break_time,
        )


def load_settings() -> BackendSettings:
    port_raw = os.getenv("TASKTOWER_PORT", "8000")
    return BackendSettings(
        database_url=os.getenv("TASKTOWER_DATABASE_URL"),
        remote_url=os.getenv("TASKTOWER_REMOTE_URL"),
        host=os.getenv("TASKTOWER_HOST", "127.0.0.1"),
        port=int(port_raw),
        sync_interval=float(os.getenv("TASKTOWER_SYNC_INTERVAL", "5")),
        tick_interval=float(os.getenv("TASKTOWER_TICK_INTERVAL", "1")),
        log_level=os.getenv("TASKTOWER_LOG_LEVEL", "INFO").upper(),
        max_players=int(os.getenv("TASKTOWER_MAX_PLAYERS", "8")),
        max_rounds=int(os.getenv("TASKTOWER_MAX_ROUNDS", "20")),
        round_time=int(os.getenv("TASKTOWER_ROUND_TIME", "25")),
        break_time=int(os.getenv("TASKTOWER_BREAK_TIME", "5")),
    )
