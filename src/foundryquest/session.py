"""Game session orchestration over catalog, evaluator, progress store, and mentor."""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from .catalog import LevelCatalog, LevelStatus
from .client import ModelClient
from .evaluator import Completion, TaskOutcome, TaskState, evaluate, new_task_state, reject
from .mentor import HintResult, Mentor
from .models import Level, PlayerAction, Reward
from .progress import PlayerStats, ProgressStore

PLAY_NOT_FOUND = "not_found"
PLAY_LOCKED = "locked"
PLAY_NEEDS_CONFIRMATION = "needs_confirmation"
PLAY_STARTED = "started"

logger = logging.getLogger(__name__)


@dataclass
class Attempt:
    """One in-progress run of a level, identified by a unique token."""

    token: int
    level: Level
    state: TaskState
    hint_index: int = 0


@dataclass(frozen=True)
class PlayResult:
    status: str
    message: str = ""
    level: Level | None = None
    token: int | None = None
    introduction: str = ""


@dataclass(frozen=True)
class ProgressSummary:
    stats: PlayerStats
    completed: int
    total: int
    badges: tuple[str, ...]
    achievements: tuple[str, ...]
    message: str = ""


class GameSession:
    """Single-player session context.

    Only one attempt is active at a time; every `play` issues a new token and
    results carrying an older token are rejected without side effects.
    """

    def __init__(
        self,
        client: ModelClient,
        catalog: LevelCatalog,
        store: ProgressStore,
        mentor: Mentor | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.store = store
        self.mentor = mentor or Mentor(client)
        self._clock = clock
        self._started = clock()
        self._tokens = itertools.count(1)
        self._attempt: Attempt | None = None
        self._last: Attempt | None = None

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def player_name(self) -> str:
        return self.store.progress.player.name

    def welcome(self) -> str:
        return self.mentor.welcome(self.player_name)

    def set_player_name(self, name: str) -> None:
        self.store.set_player_name(name)

    def play(self, level_id: int | None = None, *, replay: bool = False) -> PlayResult:
        """Start an attempt at `level_id`, or at the current level when omitted."""
        progress = self.store.progress
        if level_id is None:
            level_id = progress.stats.current_level
        level = self.catalog.get_level(level_id)
        if level is None:
            return PlayResult(status=PLAY_NOT_FOUND, message=f"Level {level_id} doesn't exist.")
        if not self.catalog.is_level_unlocked(level.id, progress):
            return PlayResult(
                status=PLAY_LOCKED,
                level=level,
                message=f"Level {level.id} is locked. Complete Level {level.id - 1} first!",
            )
        record = progress.levels.get(level.id)
        if record is not None and record.completed and not replay:
            return PlayResult(
                status=PLAY_NEEDS_CONFIRMATION,
                level=level,
                message=f"You've already completed Level {level.id}. Play it again?",
            )

        self.store.start_level(level.id)
        attempt = Attempt(token=next(self._tokens), level=level, state=new_task_state(level))
        self._attempt = attempt
        self._last = attempt
        logger.debug("Started level %d with token %d", level.id, attempt.token)
        return PlayResult(
            status=PLAY_STARTED,
            level=level,
            token=attempt.token,
            introduction=self.mentor.introduce_level(level),
        )

    def submit(self, action: PlayerAction, *, token: int | None = None) -> TaskOutcome:
        """Evaluate an action against the active attempt.

        `token` defaults to the active attempt's token.
        """
        attempt = self._attempt
        if attempt is None:
            return reject("No level in progress. Start one with 'play'.")
        if token is not None and token != attempt.token:
            logger.info("Ignoring result for stale attempt %d (active: %d)", token, attempt.token)
            return reject("That result belongs to an earlier attempt and was ignored.")

        outcome = evaluate(attempt.level, attempt.state, action, self.client)
        if outcome.accepted and outcome.sent_prompt:
            self.store.record_prompt()
        if not outcome.completed:
            return outcome
        return replace(outcome, completion=self._complete(attempt))

    def _complete(self, attempt: Attempt) -> Completion:
        level = attempt.level
        previous = self.store.level_record(level.id)
        first_clear = previous is None or not previous.completed
        record = self.store.complete_level(level.id, level.reward.points, level.reward.badge_id)
        self._attempt = None
        next_level = self.catalog.get_level(level.id + 1)
        unlocked = (
            first_clear
            and next_level is not None
            and self.catalog.is_level_unlocked(next_level.id, self.store.progress)
        )
        logger.info("Completed level %d in %ds", level.id, record.time_spent)
        return Completion(
            level=level,
            record=record,
            reward=level.reward,
            next_level_unlocked=unlocked,
            celebration=self.mentor.celebrate(level, record),
            first_completion=first_clear,
        )

    def abandon(self) -> None:
        """Drop the active attempt; already-recorded attempts stay counted."""
        self._attempt = None

    def hint(self) -> HintResult:
        """Next hint for the active level, or the last level played."""
        attempt = self._attempt or self._last
        if attempt is None:
            notice = "Start a level first, then ask me for a hint!"
            return HintResult(message=notice, hints_remaining=0, delivered=False)
        result = self.mentor.provide_hint(attempt.level, attempt.hint_index)
        if result.delivered:
            attempt.hint_index += 1
            self.store.use_hint(attempt.level.id)
        return result

    def ask(self, question: str) -> str:
        question = question.strip()
        if not question:
            return "What would you like to know? Ask me anything about AI."
        self.store.ask_mentor()
        level = self._attempt.level if self._attempt else None
        return self.mentor.answer_question(question, level)

    def explain(self, concept: str) -> str:
        concept = concept.strip()
        if not concept:
            return "What concept should I explain? Try 'embeddings' or 'system prompts'."
        return self.mentor.explain_concept(concept)

    def levels(self) -> list[LevelStatus]:
        return self.catalog.level_menu(self.store.progress)

    def progress_summary(self) -> ProgressSummary:
        progress = self.store.progress
        stats = self.store.get_stats()
        completed = self.store.get_completed_count()
        return ProgressSummary(
            stats=stats,
            completed=completed,
            total=len(self.catalog),
            badges=tuple(progress.badges),
            achievements=tuple(progress.achievements),
            message=self.mentor.progress_update(stats, completed, len(self.catalog)),
        )

    def badges(self) -> list[tuple[Reward, bool]]:
        """Every catalog badge paired with whether it has been earned."""
        earned = set(self.store.badges)
        return [(level.reward, level.reward.badge_id in earned) for level in self.catalog.levels]

    def reset(self) -> None:
        self._attempt = None
        self._last = None
        self.store.reset()

    def quit(self) -> str:
        """Record session play time and say goodbye."""
        self._attempt = None
        self.store.add_play_time(round(self._clock() - self._started))
        self._started = self._clock()
        return self.mentor.goodbye(self.store.get_stats())
