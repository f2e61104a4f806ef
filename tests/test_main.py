from typing import Any

import foundryquest.main as main
from foundryquest.catalog import LevelCatalog
from foundryquest.client import ModelClient
from foundryquest.config import Settings
from foundryquest.content_loader import ContentLoadError
from foundryquest.progress import ProgressStore
from foundryquest.session import GameSession


def _session(name: str = "") -> GameSession:
    catalog = LevelCatalog.from_bundle()
    store = ProgressStore(":memory:", catalog.level_ids)
    if name:
        store.set_player_name(name)
    return GameSession(ModelClient(Settings(offline=True)), catalog, store)


def _play(monkeypatch: Any, session: GameSession, script: list[str]) -> tuple[int, list[str]]:
    monkeypatch.setattr(main, "_session", lambda settings: session)
    inputs = iter(script)
    outputs: list[str] = []
    code = main.play_shell(input_fn=lambda _: next(inputs), print_fn=outputs.append)
    return code, outputs


def test_run_enters_play_shell(monkeypatch: Any) -> None:
    seen: list[Settings] = []
    monkeypatch.setattr(main, "setup_logging", lambda level: None)
    monkeypatch.setattr(main, "play_shell", lambda settings: seen.append(settings) or 0)
    assert main.run([]) == 0
    assert main.run(["play", "--offline", "--base-url", "http://localhost:9999/", "--progress", "p.json"]) == 0
    assert seen[1].offline is True
    assert seen[1].base_urls == ("http://localhost:9999",)
    assert str(seen[1].progress_path) == "p.json"


def test_run_debug_flag_sets_log_level(monkeypatch: Any) -> None:
    levels: list[str] = []
    monkeypatch.setattr(main, "setup_logging", levels.append)
    monkeypatch.setattr(main, "play_shell", lambda settings: 0)
    main.run(["--debug"])
    assert levels == ["DEBUG"]


def test_run_returns_2_when_content_fails(monkeypatch: Any) -> None:
    def broken(settings: Settings) -> GameSession:
        raise ContentLoadError("Level catalog contains no levels.")

    monkeypatch.setattr(main, "setup_logging", lambda level: None)
    monkeypatch.setattr(main, "_session", broken)
    assert main.run(["--offline"]) == 2


def test_play_shell_completes_first_level(monkeypatch: Any) -> None:
    session = _session()
    code, outputs = _play(monkeypatch, session, ["Ada", "play", "Hello", "What is this?", "progress", "badges", "quit"])

    assert code == 0
    assert session.player_name == "Ada"
    assert any("demo mode" in line for line in outputs)
    assert any(line == "Badge earned: 🎯 Prompt Apprentice (+100 points)" for line in outputs)
    assert any("Level 2 is now unlocked" in line for line in outputs)
    assert any(line == "- Total points: 100" for line in outputs)
    assert session.store.get_stats().total_points == 100
    assert session.client._http.is_closed is True  # noqa: SLF001


def test_play_shell_in_level_commands(monkeypatch: Any) -> None:
    session = _session("Ada")
    code, outputs = _play(monkeypatch, session, ["play 1", ":hint", ":ask what is a prompt", ":back", "q"])

    assert code == 0
    assert any(line.startswith("Sage: Here's a hint:") for line in outputs)
    assert any("message to an AI model" in line for line in outputs)
    assert any("Leaving level" in line for line in outputs)
    assert session.store.get_stats().hints_used == 1
    assert session.store.get_stats().mentor_questions == 1


def test_play_shell_quit_from_inside_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    code, outputs = _play(monkeypatch, session, ["play", "Hello", ":quit"])
    assert code == 0
    assert any("Thanks for playing" in line for line in outputs)
    assert session.store.get_stats().total_prompts_sent == 1


def test_play_shell_unknown_command_help_and_locked_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    code, outputs = _play(monkeypatch, session, ["dance", "?", "play 4", "play two", "levels", "exit"])
    assert code == 0
    assert any("Unknown command: dance" in line for line in outputs)
    assert any(line.startswith("Commands:") for line in outputs)
    assert any("Level 4 is locked" in line for line in outputs)
    assert any("Usage: play" in line for line in outputs)
    assert any(line.startswith(" 3 Embeddings Explorer") and line.endswith("locked") for line in outputs)


def test_play_shell_replay_needs_confirmation(monkeypatch: Any) -> None:
    session = _session("Ada")
    session.store.complete_level(1, 100, "prompt_apprentice")
    code, outputs = _play(monkeypatch, session, ["play 1", "n", "quit"])
    assert code == 0
    assert any("already completed Level 1" in line for line in outputs)
    record = session.store.level_record(1)
    assert record is not None and record.attempts == 0


def test_play_shell_reset_requires_confirmation(monkeypatch: Any) -> None:
    session = _session("Ada")
    session.store.complete_level(1, 100, "prompt_apprentice")
    code, outputs = _play(monkeypatch, session, ["reset", "no", "reset", "yes", "quit"])
    assert code == 0
    assert any("Reset cancelled." in line for line in outputs)
    assert session.store.get_stats().total_points == 0


def test_play_shell_search_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    for level_id in (1, 2):
        session.store.complete_level(level_id, 1, f"b{level_id}")
    script = ["play 3", "how do I deploy", "login with google", "fast responses", "quit"]
    code, outputs = _play(monkeypatch, session, script)
    assert code == 0
    assert any(line.startswith("1. [") for line in outputs)
    assert "embedding_explorer" in session.store.badges


def test_play_shell_workflow_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    for level_id in (1, 2, 3):
        session.store.complete_level(level_id, 1, f"b{level_id}")
    code, outputs = _play(monkeypatch, session, ["play 4", "", "quit"])
    assert code == 0
    assert any("[Generate Topics]" in line for line in outputs)
    assert any("[Summarize]" in line for line in outputs)
    assert "workflow_wizard" in session.store.badges


def test_play_shell_tool_builder_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    for level_id in (1, 2, 3, 4):
        session.store.complete_level(level_id, 1, f"b{level_id}")
    script = ["play 5", "9", "4", "Haiku Bot", "Writes haiku", "", "1", "A long article about rivers", "quit"]
    code, outputs = _play(monkeypatch, session, script)
    assert code == 0
    assert any("Invalid choice." in line for line in outputs)
    assert any("Please fill in all fields" in line for line in outputs)
    assert any(line.startswith('Using your "Text Summarizer" tool') for line in outputs)
    assert "ai_champion" in session.store.badges
    assert any("every level" in line for line in outputs)


def test_play_shell_prompt_improvement_level(monkeypatch: Any) -> None:
    session = _session("Ada")
    session.store.complete_level(1, 1, "b1")
    improved = "Explain to a 10-year-old in 3 short bullet points how a laptop computer stores files."
    code, outputs = _play(monkeypatch, session, ["play", "Tell me more about computers", improved, "quit"])
    assert code == 0
    assert any("Aim for at least 50 characters" in line for line in outputs)
    assert any(line.startswith("\nVague prompt response:") for line in outputs)
    assert "prompt_engineer" in session.store.badges


def test_session_factory_wires_offline_components(tmp_path: Any) -> None:
    session = main._session(Settings(offline=True, progress_path=tmp_path / "progress.json"))  # noqa: SLF001
    try:
        assert session.client.demo_mode is True
        assert session.catalog.level_ids == [1, 2, 3, 4, 5]
        assert session.store.path == tmp_path / "progress.json"
    finally:
        session.client.close()


def test_play_shell_replay_does_not_announce_unlock(monkeypatch: Any) -> None:
    session = _session("Ada")
    session.store.complete_level(1, 100, "prompt_apprentice")
    code, outputs = _play(monkeypatch, session, ["play 1", "y", "Hello", "What is this?", "quit"])
    assert code == 0
    assert any(line.startswith("Badge earned:") for line in outputs)
    assert not any("now unlocked" in line for line in outputs)
