from collections.abc import Sequence

from foundryquest.catalog import LevelCatalog
from foundryquest.client import ModelClient, ServiceUnavailable
from foundryquest.config import Settings
from foundryquest.models import PromptAction, RunWorkflowAction, SearchAction
from foundryquest.progress import ProgressStore
from foundryquest.session import (
    PLAY_LOCKED,
    PLAY_NEEDS_CONFIRMATION,
    PLAY_NOT_FOUND,
    PLAY_STARTED,
    GameSession,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FailingSecondStepClient(ModelClient):
    """Connected client whose second chat call drops."""

    def __init__(self) -> None:
        super().__init__(Settings(offline=True))
        self.initialized = True
        self.calls = 0

    def chat(self, message: str, *, fallback: bool = True) -> str:
        self.calls += 1
        if self.calls == 2:
            raise ServiceUnavailable("dropped")
        return f"output {self.calls}"

    def chat_with_system(
        self, system: str, message: str, *, history: Sequence[dict[str, str]] = (), fallback: bool = True
    ) -> str:
        raise ServiceUnavailable("mentor offline")


def _session(client: ModelClient | None = None, clock: FakeClock | None = None) -> GameSession:
    catalog = LevelCatalog.from_bundle()
    store = ProgressStore(":memory:", catalog.level_ids)
    client = client or ModelClient(Settings(offline=True))
    return GameSession(client, catalog, store, clock=clock or FakeClock())


def _finish_level_one(session: GameSession) -> None:
    session.play(1, replay=True)
    session.submit(PromptAction("Hello"))
    session.submit(PromptAction("What is this?"))


def test_simple_prompt_scenario_awards_points_and_badge() -> None:
    session = _session()
    result = session.play()
    assert result.status == PLAY_STARTED
    assert result.level is not None and result.level.id == 1
    assert result.introduction

    rejected = session.submit(PromptAction(""))
    assert rejected.accepted is False
    first = session.submit(PromptAction("Hello"))
    assert first.completed is False
    second = session.submit(PromptAction("What is this?"))

    assert second.completed is True
    completion = second.completion
    assert completion is not None
    assert completion.reward.badge == "Prompt Apprentice"
    assert completion.next_level_unlocked is True
    assert completion.celebration
    stats = session.store.get_stats()
    assert stats.total_points == 100
    assert stats.total_prompts_sent == 2
    assert stats.current_level == 2
    assert session.store.badges == ["prompt_apprentice"]
    assert session.attempt is None


def test_play_statuses() -> None:
    session = _session()
    assert session.play(9).status == PLAY_NOT_FOUND
    locked = session.play(3)
    assert locked.status == PLAY_LOCKED
    assert "Complete Level 2 first" in locked.message

    _finish_level_one(session)
    again = session.play(1)
    assert again.status == PLAY_NEEDS_CONFIRMATION
    assert session.attempt is None
    assert session.play(1, replay=True).status == PLAY_STARTED


def test_play_without_id_uses_current_level() -> None:
    session = _session()
    _finish_level_one(session)
    result = session.play()
    assert result.level is not None and result.level.id == 2


def test_replay_keeps_single_badge() -> None:
    session = _session()
    _finish_level_one(session)
    _finish_level_one(session)
    assert session.store.badges.count("prompt_apprentice") == 1
    assert session.store.get_stats().levels_completed == 1
    record = session.store.level_record(1)
    assert record is not None and record.attempts == 2


def test_stale_token_is_ignored() -> None:
    session = _session()
    old = session.play(1)
    new = session.play(1)
    assert old.token != new.token

    stale = session.submit(PromptAction("Hello"), token=old.token)
    assert stale.accepted is False
    assert session.store.get_stats().total_prompts_sent == 0
    assert session.submit(PromptAction("Hello"), token=new.token).accepted is True


def test_submit_without_attempt_is_rejected() -> None:
    session = _session()
    assert session.submit(PromptAction("Hello")).accepted is False
    session.play(1)
    session.abandon()
    assert session.submit(PromptAction("Hello")).accepted is False
    record = session.store.level_record(1)
    assert record is not None and record.attempts == 1


def test_rejected_and_mismatched_actions_do_not_count_prompts() -> None:
    session = _session()
    session.play(1)
    session.submit(SearchAction("docker"))
    session.submit(PromptAction("  "))
    assert session.store.get_stats().total_prompts_sent == 0


def test_hints_are_capped_and_recorded() -> None:
    session = _session()
    assert session.hint().delivered is False

    session.play(1)
    level = session.attempt.level  # type: ignore[union-attr]
    results = [session.hint() for _ in range(len(level.hints) + 2)]
    assert [result.delivered for result in results] == [True] * len(level.hints) + [False, False]
    assert results[0].hints_remaining == len(level.hints) - 1
    assert session.store.get_stats().hints_used == len(level.hints)
    record = session.store.level_record(1)
    assert record is not None and record.hints_used == len(level.hints)


def test_hint_after_abandon_uses_last_level() -> None:
    session = _session()
    session.play(1)
    session.abandon()
    assert session.hint().delivered is True
    assert session.store.get_stats().hints_used == 1


def test_ask_and_explain() -> None:
    session = _session()
    assert "What would you like to know" in session.ask("   ")
    assert session.store.get_stats().mentor_questions == 0
    answer = session.ask("what are embeddings?")
    assert "Embeddings convert text" in answer
    assert session.store.get_stats().mentor_questions == 1
    assert "concept" in session.explain("").lower()
    assert "tokenizers" in session.explain("tokenizers")


def test_workflow_failure_reports_step_and_does_not_complete() -> None:
    client = FailingSecondStepClient()
    session = _session(client)
    for level_id in (1, 2, 3):
        session.store.complete_level(level_id, 1, f"b{level_id}")
    started = session.play(4)
    assert started.status == PLAY_STARTED
    assert started.introduction.startswith("Welcome to Level 4!")

    outcome = session.submit(RunWorkflowAction("volcanoes"), token=started.token)
    assert outcome.failed_step == "Expand First"
    assert outcome.step_outputs == ("output 1",)
    assert outcome.completed is False
    assert client.calls == 2
    assert session.store.level_record(4).completed is False  # type: ignore[union-attr]
    assert session.attempt is not None


def test_levels_badges_and_summary() -> None:
    session = _session()
    _finish_level_one(session)
    rows = session.levels()
    assert [(row.id, row.completed, row.unlocked) for row in rows[:3]] == [
        (1, True, True),
        (2, False, True),
        (3, False, False),
    ]
    badges = session.badges()
    assert [(reward.badge_id, earned) for reward, earned in badges][:2] == [
        ("prompt_apprentice", True),
        ("prompt_engineer", False),
    ]
    summary = session.progress_summary()
    assert summary.completed == 1
    assert summary.total == 5
    assert summary.badges == ("prompt_apprentice",)
    assert "1/5 levels" in summary.message


def test_reset_restores_catalog_defaults() -> None:
    session = _session()
    _finish_level_one(session)
    session.reset()
    progress = session.store.progress
    assert progress.stats.total_points == 0
    assert progress.badges == []
    assert all(not record.completed for record in progress.levels.values())
    assert sorted(progress.levels) == [1, 2, 3, 4, 5]
    assert session.hint().delivered is False


def test_quit_records_play_time() -> None:
    clock = FakeClock()
    session = _session(clock=clock)
    clock.now += 125
    goodbye = session.quit()
    assert goodbye.startswith("Thanks for playing!")
    assert session.store.get_stats().total_play_time == 125


def test_replay_does_not_report_unlock_again() -> None:
    session = _session()
    session.play(1)
    session.submit(PromptAction("Hello"))
    first = session.submit(PromptAction("What is this?")).completion
    assert first is not None and first.first_completion is True

    session.play(1, replay=True)
    session.submit(PromptAction("Hello"))
    replay = session.submit(PromptAction("What is this?")).completion
    assert replay is not None
    assert replay.first_completion is False
    assert replay.next_level_unlocked is False
    assert session.store.get_stats().total_points == 200
