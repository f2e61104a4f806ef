"""JSON persistence for player progress, stats, badges, and achievements."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

MEMORY_PATH = ":memory:"
SPEED_DEMON_SECONDS = 120

ACHIEVEMENT_FIRST_PROMPT = "first_prompt"
ACHIEVEMENT_HINT_FREE = "hint_free"
ACHIEVEMENT_SPEED_DEMON = "speed_demon"
ACHIEVEMENT_COMPLETIONIST = "completionist"

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PlayerInfo:
    """Player identity block."""

    name: str = ""
    created_at: str = ""
    last_played: str = ""


@dataclass
class PlayerStats:
    """Aggregate counters across all levels."""

    total_points: int = 0
    current_level: int = 1
    levels_completed: int = 0
    hints_used: int = 0
    mentor_questions: int = 0
    total_play_time: int = 0
    fastest_level: int | None = None
    total_prompts_sent: int = 0


@dataclass
class LevelRecord:
    """Per-level attempt and completion record."""

    completed: bool = False
    started_at: str | None = None
    completed_at: str | None = None
    attempts: int = 0
    hints_used: int = 0
    time_spent: int = 0


@dataclass
class PlayerProgress:
    """Full persisted progress document."""

    player: PlayerInfo = field(default_factory=PlayerInfo)
    stats: PlayerStats = field(default_factory=PlayerStats)
    levels: dict[int, LevelRecord] = field(default_factory=dict)
    badges: list[str] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)

    def completed_count(self) -> int:
        return sum(1 for record in self.levels.values() if record.completed)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase document schema."""
        return {
            "player": {
                "name": self.player.name,
                "createdAt": self.player.created_at,
                "lastPlayed": self.player.last_played,
            },
            "stats": {
                "totalPoints": self.stats.total_points,
                "currentLevel": self.stats.current_level,
                "levelsCompleted": self.stats.levels_completed,
                "hintsUsed": self.stats.hints_used,
                "mentorQuestions": self.stats.mentor_questions,
                "totalPlayTime": self.stats.total_play_time,
                "fastestLevel": self.stats.fastest_level,
                "totalPromptsSent": self.stats.total_prompts_sent,
            },
            "levels": {
                str(level_id): {
                    "completed": record.completed,
                    "startedAt": record.started_at,
                    "completedAt": record.completed_at,
                    "attempts": record.attempts,
                    "hintsUsed": record.hints_used,
                    "timeSpent": record.time_spent,
                }
                for level_id, record in sorted(self.levels.items())
            },
            "badges": list(self.badges),
            "achievements": list(self.achievements),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PlayerProgress:
        """Parse a persisted document; raises on structurally invalid input."""
        player = raw.get("player", {})
        stats = raw.get("stats", {})
        fastest = stats.get("fastestLevel")
        levels = {
            int(key): LevelRecord(
                completed=_flag(value.get("completed", False)),
                started_at=_optional_str(value.get("startedAt")),
                completed_at=_optional_str(value.get("completedAt")),
                attempts=_count(value.get("attempts")),
                hints_used=_count(value.get("hintsUsed")),
                time_spent=_count(value.get("timeSpent")),
            )
            for key, value in raw.get("levels", {}).items()
        }
        return cls(
            player=PlayerInfo(
                name=str(player.get("name") or ""),
                created_at=str(player.get("createdAt") or ""),
                last_played=str(player.get("lastPlayed") or ""),
            ),
            stats=PlayerStats(
                total_points=_count(stats.get("totalPoints")),
                current_level=max(1, _count(stats.get("currentLevel", 1))),
                levels_completed=_count(stats.get("levelsCompleted")),
                hints_used=_count(stats.get("hintsUsed")),
                mentor_questions=_count(stats.get("mentorQuestions")),
                total_play_time=_count(stats.get("totalPlayTime")),
                fastest_level=None if fastest is None else _count(fastest),
                total_prompts_sent=_count(stats.get("totalPromptsSent")),
            ),
            levels=levels,
            badges=list(dict.fromkeys(str(item) for item in raw.get("badges", []))),
            achievements=list(dict.fromkeys(str(item) for item in raw.get("achievements", []))),
        )


class ProgressStore:
    """File-backed owner of the single player's progress record."""

    def __init__(
        self,
        path: Path | str,
        level_ids: Iterable[int],
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Configure the store; nothing is read until first access."""
        self._path = None if str(path) == MEMORY_PATH else Path(path)
        self._level_ids = sorted(set(level_ids))
        self._now = now or _utc_now
        self._progress: PlayerProgress | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def max_level(self) -> int:
        return self._level_ids[-1] if self._level_ids else 1

    @property
    def progress(self) -> PlayerProgress:
        """Current in-memory record, loading it on first access."""
        if self._progress is None:
            return self.load()
        return self._progress

    @property
    def badges(self) -> list[str]:
        return list(self.progress.badges)

    def default_progress(self) -> PlayerProgress:
        """Fresh record with a default entry for every catalog level."""
        now = self._now().isoformat()
        return PlayerProgress(
            player=PlayerInfo(name="", created_at=now, last_played=now),
            levels={level_id: LevelRecord() for level_id in self._level_ids},
        )

    def load(self) -> PlayerProgress:
        """Return the persisted record, or create and persist defaults."""
        if self._path is None:
            if self._progress is None:
                self._progress = self.default_progress()
            return self._progress

        progress = self._read()
        if progress is None:
            self._progress = self.default_progress()
            self.save()
            return self._progress

        for level_id in self._level_ids:
            progress.levels.setdefault(level_id, LevelRecord())
        progress.stats.levels_completed = progress.completed_count()
        progress.stats.current_level = min(progress.stats.current_level, self.max_level)
        self._progress = progress
        return progress

    def _read(self) -> PlayerProgress | None:
        """Read the document; any missing or corrupt state reads as no progress."""
        assert self._path is not None
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No saved progress at %s; starting fresh", self._path)
            return None
        except OSError as exc:
            logger.warning("Could not read progress at %s (%s); starting fresh", self._path, exc)
            return None
        try:
            raw = json.loads(text)
            if not isinstance(raw, dict):
                raise TypeError("progress document must be a JSON object")
            return PlayerProgress.from_dict(raw)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("Saved progress at %s is corrupt (%s); starting fresh", self._path, exc)
            return None

    def save(self) -> bool:
        """Atomically rewrite the whole document; failures are logged, never raised.

        The payload goes to a sibling temp file that replaces the target only
        once fully written, so a failed save leaves the previous document intact.
        """
        if self._path is None or self._progress is None:
            return True
        payload = json.dumps(self._progress.to_dict(), indent=2, ensure_ascii=False)
        temp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as handle:
                handle.write(payload + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self._path)
        except OSError:
            logger.exception("Could not save progress to %s", self._path)
            temp_path.unlink(missing_ok=True)
            return False
        return True

    @contextmanager
    def _mutation(self) -> Iterator[PlayerProgress]:
        """Yield the live record and always persist it afterwards."""
        progress = self.progress
        try:
            yield progress
        finally:
            self.save()

    def _record(self, level_id: int) -> LevelRecord:
        record = self.progress.levels.get(level_id)
        if record is None:
            raise KeyError(f"Unknown level id: {level_id}")
        return record

    def level_record(self, level_id: int) -> LevelRecord | None:
        """Return a snapshot of one level's record."""
        record = self.progress.levels.get(level_id)
        return None if record is None else replace(record)

    def set_player_name(self, name: str) -> None:
        with self._mutation() as progress:
            progress.player.name = name.strip()
            progress.player.last_played = self._now().isoformat()

    def start_level(self, level_id: int) -> None:
        """Stamp the first start once and count every entry as an attempt."""
        record = self._record(level_id)
        with self._mutation():
            if not record.started_at:
                record.started_at = self._now().isoformat()
            record.attempts += 1

    def complete_level(self, level_id: int, points: int, badge_id: str | None) -> LevelRecord:
        """Mark a level completed and roll the reward into stats.

        Points are added on every completion pass, replays included; badges
        and achievements keep set semantics.
        """
        record = self._record(level_id)
        with self._mutation() as progress:
            now = self._now()
            record.completed = True
            record.completed_at = now.isoformat()
            record.time_spent = _elapsed_seconds(record.started_at, now)

            stats = progress.stats
            stats.total_points += points
            stats.levels_completed = progress.completed_count()
            stats.current_level = min(level_id + 1, self.max_level)
            if stats.fastest_level is None or record.time_spent < stats.fastest_level:
                stats.fastest_level = record.time_spent

            if badge_id and badge_id not in progress.badges:
                progress.badges.append(badge_id)

            if record.hints_used == 0:
                _grant(progress, ACHIEVEMENT_HINT_FREE)
            if record.time_spent < SPEED_DEMON_SECONDS:
                _grant(progress, ACHIEVEMENT_SPEED_DEMON)
            if self._level_ids and all(progress.levels[level].completed for level in self._level_ids):
                _grant(progress, ACHIEVEMENT_COMPLETIONIST)
        return replace(record)

    def use_hint(self, level_id: int) -> None:
        record = self._record(level_id)
        with self._mutation() as progress:
            record.hints_used += 1
            progress.stats.hints_used += 1

    def ask_mentor(self) -> None:
        with self._mutation() as progress:
            progress.stats.mentor_questions += 1

    def record_prompt(self) -> None:
        with self._mutation() as progress:
            progress.stats.total_prompts_sent += 1
            _grant(progress, ACHIEVEMENT_FIRST_PROMPT)

    def add_play_time(self, seconds: int) -> None:
        """Accumulate session time and stamp the last-played time."""
        with self._mutation() as progress:
            progress.stats.total_play_time += max(0, int(seconds))
            progress.player.last_played = self._now().isoformat()

    def reset(self) -> PlayerProgress:
        """Replace all progress with catalog-derived defaults."""
        self._progress = self.default_progress()
        self.save()
        return self._progress

    def get_stats(self) -> PlayerStats:
        return replace(self.progress.stats)

    def get_completed_count(self) -> int:
        return self.progress.completed_count()


def _grant(progress: PlayerProgress, achievement_id: str) -> None:
    if achievement_id not in progress.achievements:
        progress.achievements.append(achievement_id)


def _elapsed_seconds(started_at: str | None, now: datetime) -> int:
    """Whole seconds since `started_at`, clamped at zero."""
    if not started_at:
        return 0
    try:
        started = datetime.fromisoformat(started_at)
    except ValueError:
        return 0
    if started.tzinfo is None:
        started = started.replace(tzinfo=UTC)
    return max(0, round((now - started).total_seconds()))


def _count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise TypeError("expected a number, got a boolean")
    return max(0, int(value))


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, got {value!r}")
    return value
