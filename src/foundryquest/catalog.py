"""Read-only level catalog and unlock rules."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .content_loader import load_levels
from .models import Level
from .progress import PlayerProgress


@dataclass(frozen=True)
class LevelStatus:
    """Menu row for one level."""

    id: int
    title: str
    unlocked: bool
    completed: bool


class LevelCatalog:
    """Ordered, immutable collection of levels."""

    def __init__(self, levels: Iterable[Level]) -> None:
        self._levels = tuple(sorted(levels, key=lambda item: item.id))
        self._by_id = {level.id: level for level in self._levels}

    @classmethod
    def from_bundle(cls) -> LevelCatalog:
        """Build the catalog from bundled content."""
        return cls(load_levels())

    @property
    def levels(self) -> tuple[Level, ...]:
        return self._levels

    @property
    def level_ids(self) -> list[int]:
        return [level.id for level in self._levels]

    @property
    def max_level(self) -> int:
        return self._levels[-1].id if self._levels else 0

    def __len__(self) -> int:
        return len(self._levels)

    def get_level(self, level_id: int) -> Level | None:
        """Return one level or None when the id is unknown."""
        return self._by_id.get(level_id)

    def is_level_unlocked(self, level_id: int, progress: PlayerProgress) -> bool:
        """Level 1 is always open; later levels need the previous one completed."""
        if level_id not in self._by_id:
            return False
        if level_id == 1:
            return True
        previous = progress.levels.get(level_id - 1)
        return previous is not None and previous.completed

    def level_menu(self, progress: PlayerProgress) -> list[LevelStatus]:
        """Return unlock/completion status for every level."""
        rows: list[LevelStatus] = []
        for level in self._levels:
            record = progress.levels.get(level.id)
            rows.append(
                LevelStatus(
                    id=level.id,
                    title=level.title,
                    unlocked=self.is_level_unlocked(level.id, progress),
                    completed=record is not None and record.completed,
                )
            )
        return rows
