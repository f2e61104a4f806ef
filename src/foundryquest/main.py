"""CLI entrypoint for the foundryquest learning game."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import assert_never

from .catalog import LevelCatalog
from .client import ModelClient
from .config import Settings
from .content_loader import ContentLoadError
from .evaluator import TaskOutcome, ToolBuilderState, definition_from_template
from .models import (
    CreateToolAction,
    EmbeddingSearchTask,
    Level,
    PromptAction,
    PromptImprovementTask,
    RunWorkflowAction,
    SearchAction,
    SimplePromptTask,
    TestToolAction,
    ToolBuilderTask,
    ToolDefinition,
    WorkflowPipelineTask,
)
from .progress import ProgressStore
from .session import PLAY_NEEDS_CONFIRMATION, PLAY_STARTED, GameSession, PlayResult

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
BACK_COMMANDS = {":back", ":b"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
QUIT_COMMANDS = {"quit", "exit", "q"}
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TOP_RESULTS = 3

HELP_TEXT = """Commands:
  play [n]      Start the current level, or level n (alias: start)
  levels        Show all levels and their status (alias: menu)
  progress      Show your stats (alias: stats)
  badges        Show earned and locked badges
  hint          Get a hint for your current level
  ask [text]    Ask Sage, your mentor, a question
  explain [x]   Have Sage explain a concept
  reset         Erase all progress
  help          Show this help (alias: ?)
  quit          Save and leave (aliases: exit, q)

Inside a level: :hint, :ask <question>, :back, :quit"""

logger = logging.getLogger(__name__)


class QuitApp(Exception):
    """Signal immediate app exit from nested level flows."""


def setup_logging(level: str = "WARNING") -> None:
    """Configure root logging to stderr."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT, stream=sys.stderr)


def _session(settings: Settings) -> GameSession:
    """Create a game session wired to the local runtime and progress file."""
    catalog = LevelCatalog.from_bundle()
    store = ProgressStore(settings.progress_path, catalog.level_ids)
    client = ModelClient(settings)
    client.initialize()
    return GameSession(client, catalog, store)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, object] = {}
    if args.progress is not None:
        overrides["progress_path"] = args.progress
    if args.base_url:
        overrides["base_urls"] = tuple(url.rstrip("/") for url in args.base_url)
    if args.offline:
        overrides["offline"] = True
    if args.debug:
        overrides["log_level"] = "DEBUG"
    return replace(settings, **overrides) if overrides else settings


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="foundryquest", description="Learn local AI development, one level at a time")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument("--progress", type=Path, help="progress file path (default: .foundryquest/progress.json)")
    parser.add_argument("--base-url", action="append", help="model runtime URL; repeat to try several")
    parser.add_argument("--offline", action="store_true", help="skip runtime detection and use demo responses")
    parser.add_argument("--debug", action="store_true", help="log debug output to stderr")
    args = parser.parse_args(argv)

    settings = _settings(args)
    setup_logging(settings.log_level)
    try:
        return play_shell(settings=settings)
    except ContentLoadError as exc:
        logger.error("Level content failed to load: %s", exc)
        print(f"Could not load level content: {exc}", file=sys.stderr)
        return 2


def play_shell(input_fn: InputFn = input, print_fn: PrintFn = print, settings: Settings | None = None) -> int:
    """Run the interactive game shell."""
    session = _session(settings or Settings.from_env())
    try:
        print_fn("\n=== FoundryQuest ===")
        if session.client.demo_mode:
            print_fn("Model runtime not detected: running in demo mode with simulated responses.")
        else:
            print_fn(f"Connected to {session.client.base_url} (model: {session.client.model})")

        if not session.player_name:
            name = input_fn("What's your name, adventurer? ").strip()
            if name:
                session.set_player_name(name)
        print_fn(f"\nSage: {session.welcome()}")
        print_fn("Type 'help' for commands, or 'play' to begin.")

        try:
            while True:
                line = input_fn("\nfoundryquest> ").strip()
                command, _, argument = line.partition(" ")
                command = command.lower()
                argument = argument.strip()

                if not command:
                    continue
                if command in {"play", "start"}:
                    _play_flow(session, argument, input_fn, print_fn)
                elif command in {"levels", "menu"}:
                    _levels_flow(session, print_fn)
                elif command in {"progress", "stats"}:
                    _progress_flow(session, print_fn)
                elif command == "badges":
                    _badges_flow(session, print_fn)
                elif command == "hint":
                    _hint_flow(session, print_fn)
                elif command == "ask":
                    question = argument or input_fn("Your question: ").strip()
                    print_fn(f"Sage: {session.ask(question)}")
                elif command == "explain":
                    concept = argument or input_fn("Concept to explain: ").strip()
                    print_fn(f"Sage: {session.explain(concept)}")
                elif command in {"help", "?"}:
                    print_fn(HELP_TEXT)
                elif command == "reset":
                    _reset_flow(session, input_fn, print_fn)
                elif command in QUIT_COMMANDS:
                    raise QuitApp()
                else:
                    print_fn(f"Unknown command: {command}. Type 'help' for the list of commands.")
        except QuitApp:
            print_fn(f"Sage: {session.quit()}")
            return 0
    finally:
        session.client.close()


def _play_flow(session: GameSession, argument: str, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Start a level, confirming replays of completed ones."""
    level_id: int | None = None
    if argument:
        if not argument.isdigit():
            print_fn("Usage: play [level number]")
            return
        level_id = int(argument)

    result = session.play(level_id)
    if result.status == PLAY_NEEDS_CONFIRMATION and result.level is not None:
        print_fn(result.message)
        if input_fn("Replay this level? (y/n): ").strip().lower() not in {"y", "yes"}:
            return
        result = session.play(result.level.id, replay=True)
    if result.status != PLAY_STARTED:
        print_fn(result.message)
        return
    _run_level(session, result, input_fn, print_fn)


def _run_level(session: GameSession, result: PlayResult, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Show the level briefing and hand off to its task flow."""
    level = result.level
    assert level is not None
    print_fn(f"\n=== Level {level.id}: {level.title} ===")
    print_fn(level.description)
    print_fn(f"Objective: {level.objective}")
    for index, step in enumerate(level.instructions, start=1):
        print_fn(f"  {index}. {step}")
    print_fn(f"\nSage: {result.introduction}")
    print_fn("Type :hint for a hint, :ask <question> for help, :back to leave the level.")

    task = level.task
    match task:
        case SimplePromptTask():
            finished = _simple_prompt_flow(session, task, input_fn, print_fn)
        case PromptImprovementTask():
            finished = _prompt_improvement_flow(session, task, input_fn, print_fn)
        case EmbeddingSearchTask():
            finished = _search_flow(session, task, input_fn, print_fn)
        case WorkflowPipelineTask():
            finished = _workflow_flow(session, task, input_fn, print_fn)
        case ToolBuilderTask():
            finished = _tool_builder_flow(session, task, input_fn, print_fn)
        case _ as unreachable:
            assert_never(unreachable)

    if not finished:
        session.abandon()
        print_fn("Leaving level. Progress saved.")


def _level_input(session: GameSession, prompt: str, input_fn: InputFn, print_fn: PrintFn) -> str | None:
    """Read one in-level entry; None means the player went back."""
    while True:
        text = input_fn(prompt).strip()
        lowered = text.lower()
        if lowered in BACK_COMMANDS:
            return None
        if lowered in FLOW_EXIT_COMMANDS:
            raise QuitApp()
        if lowered == ":hint":
            _hint_flow(session, print_fn)
            continue
        if lowered == ":ask" or lowered.startswith(":ask "):
            question = text[4:].strip() or input_fn("Your question: ").strip()
            print_fn(f"Sage: {session.ask(question)}")
            continue
        return text


def _report(session: GameSession, level: Level, outcome: TaskOutcome, print_fn: PrintFn) -> bool:
    """Print an outcome; True once the level is complete."""
    if not outcome.accepted:
        print_fn(outcome.message)
        return False
    if outcome.failed_step is not None:
        print_fn(outcome.message)
        print_fn(f"Sage: {session.mentor.encourage_retry(level, outcome.message)}")
        return False
    print_fn(outcome.message)

    completion = outcome.completion
    if completion is None:
        return False
    reward = completion.reward
    print_fn(f"\nSage: {completion.celebration}")
    badge = f"{reward.icon} {reward.badge}" if reward.icon else reward.badge
    print_fn(f"Badge earned: {badge} (+{reward.points} points)")
    print_fn(f"Time: {completion.record.time_spent}s, hints used: {completion.record.hints_used}")
    if completion.next_level_unlocked:
        print_fn(f"Level {completion.level.id + 1} is now unlocked! Type 'play' to continue.")
    elif completion.first_completion and session.store.get_completed_count() >= len(session.catalog):
        print_fn("You've completed every level. You're an AI Champion!")
    return True


def _simple_prompt_flow(session: GameSession, task: SimplePromptTask, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Chat with the model until enough prompts have been sent."""
    attempt = session.attempt
    assert attempt is not None
    if task.default_prompt:
        print_fn(f"Try something like: {task.default_prompt}")
    while True:
        text = _level_input(session, "You: ", input_fn, print_fn)
        if text is None:
            return False
        outcome = session.submit(PromptAction(text), token=attempt.token)
        if outcome.response is not None:
            print_fn(f"AI: {outcome.response}")
        if _report(session, attempt.level, outcome, print_fn):
            return True


def _prompt_improvement_flow(
    session: GameSession, task: PromptImprovementTask, input_fn: InputFn, print_fn: PrintFn
) -> bool:
    """Rewrite a vague prompt and compare both responses."""
    attempt = session.attempt
    assert attempt is not None
    print_fn(f'\nThe vague prompt: "{task.bad_prompt}"')
    if task.tips:
        print_fn("Tips:")
        for tip in task.tips:
            print_fn(f"- {tip}")
    while True:
        text = _level_input(session, "Improved prompt: ", input_fn, print_fn)
        if text is None:
            return False
        outcome = session.submit(PromptAction(text), token=attempt.token)
        if outcome.baseline is not None:
            print_fn(f"\nVague prompt response:\n{outcome.baseline}")
        if outcome.response is not None:
            print_fn(f"\nYour prompt's response:\n{outcome.response}")
        if _report(session, attempt.level, outcome, print_fn):
            return True


def _search_flow(session: GameSession, task: EmbeddingSearchTask, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Run semantic searches over the level's knowledge base."""
    attempt = session.attempt
    assert attempt is not None
    print_fn("\nKnowledge base topics: " + ", ".join(entry.topic for entry in task.knowledge_base))
    if task.sample_queries:
        print_fn("Sample queries: " + "; ".join(task.sample_queries))
    while True:
        query = _level_input(session, "Search: ", input_fn, print_fn)
        if query is None:
            return False
        outcome = session.submit(SearchAction(query), token=attempt.token)
        for rank, result in enumerate(outcome.results[:TOP_RESULTS], start=1):
            print_fn(f"{rank}. [{round(result.score * 100)}%] {result.entry.topic}: {result.entry.text}")
        if _report(session, attempt.level, outcome, print_fn):
            return True


def _workflow_flow(session: GameSession, task: WorkflowPipelineTask, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Run the multi-step pipeline on a topic."""
    attempt = session.attempt
    assert attempt is not None
    print_fn("\nPipeline:")
    for step in task.steps:
        print_fn(f"  {step.id}. {step.name}: {step.description}")
    hint = f" (blank = {task.sample_input})" if task.sample_input else ""
    while True:
        topic = _level_input(session, f"Topic{hint}: ", input_fn, print_fn)
        if topic is None:
            return False
        outcome = session.submit(RunWorkflowAction(topic), token=attempt.token)
        for step, output in zip(task.steps, outcome.step_outputs, strict=False):
            print_fn(f"\n[{step.name}]\n{output}")
        if _report(session, attempt.level, outcome, print_fn):
            return True


def _tool_builder_flow(session: GameSession, task: ToolBuilderTask, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Define a tool from a template or from scratch, then test it."""
    attempt = session.attempt
    assert attempt is not None
    state = attempt.state
    assert isinstance(state, ToolBuilderState)
    designing = not state.tool_created
    while True:
        if designing:
            definition = _choose_tool(session, task, input_fn, print_fn)
            if definition is None:
                return False
            outcome = session.submit(CreateToolAction(definition), token=attempt.token)
            _report(session, attempt.level, outcome, print_fn)
            designing = not outcome.accepted
            continue

        text = _level_input(session, "Test input (:new to redesign): ", input_fn, print_fn)
        if text is None:
            return False
        if text.lower() == ":new":
            designing = True
            continue
        outcome = session.submit(TestToolAction(text), token=attempt.token)
        if outcome.response is not None:
            print_fn(outcome.response)
        if _report(session, attempt.level, outcome, print_fn):
            return True


def _choose_tool(
    session: GameSession, task: ToolBuilderTask, input_fn: InputFn, print_fn: PrintFn
) -> ToolDefinition | None:
    """Pick a template; templates without a system prompt ask for one."""
    print_fn("\nTool templates:")
    for index, template in enumerate(task.templates, start=1):
        print_fn(f"{index}) {template.name}: {template.description}")
    while True:
        choice = _level_input(session, "Choose template: ", input_fn, print_fn)
        if choice is None:
            return None
        if choice.isdigit() and 0 <= int(choice) - 1 < len(task.templates):
            break
        print_fn("Invalid choice.")

    definition = definition_from_template(task.templates[int(choice) - 1])
    if definition.system_prompt:
        print_fn(f"System prompt: {definition.system_prompt}")
        return definition

    fields = []
    for prompt in ("Tool name: ", "Description: ", "System prompt: "):
        value = _level_input(session, prompt, input_fn, print_fn)
        if value is None:
            return None
        fields.append(value)
    return ToolDefinition(name=fields[0], description=fields[1], system_prompt=fields[2])


def _hint_flow(session: GameSession, print_fn: PrintFn) -> None:
    result = session.hint()
    print_fn(f"Sage: {result.message}")
    if result.delivered:
        print_fn(f"({result.hints_remaining} hint(s) left)")


def _levels_flow(session: GameSession, print_fn: PrintFn) -> None:
    """Print level status table."""
    rows = session.levels()
    print_fn("\n=== Levels ===")
    title_width = max(len("Title"), max(len(row.title) for row in rows))
    header = f"{'#':>2} {'Title':<{title_width}} Status"
    print_fn(header)
    print_fn("-" * len(header))
    for row in rows:
        status = "completed" if row.completed else ("unlocked" if row.unlocked else "locked")
        print_fn(f"{row.id:>2} {row.title:<{title_width}} {status}")


def _progress_flow(session: GameSession, print_fn: PrintFn) -> None:
    summary = session.progress_summary()
    stats = summary.stats
    print_fn("\n=== Progress ===")
    print_fn(f"- Levels completed: {summary.completed}/{summary.total}")
    print_fn(f"- Total points: {stats.total_points}")
    print_fn(f"- Prompts sent: {stats.total_prompts_sent}")
    print_fn(f"- Hints used: {stats.hints_used}")
    print_fn(f"- Mentor questions: {stats.mentor_questions}")
    print_fn(f"- Play time: {stats.total_play_time // 60}m {stats.total_play_time % 60}s")
    if stats.fastest_level is not None:
        print_fn(f"- Fastest level: {stats.fastest_level}s")
    if summary.achievements:
        print_fn(f"- Achievements: {', '.join(summary.achievements)}")
    print_fn(f"\nSage: {summary.message}")


def _badges_flow(session: GameSession, print_fn: PrintFn) -> None:
    print_fn("\n=== Badges ===")
    for reward, earned in session.badges():
        if earned:
            print_fn(f"{reward.icon} {reward.badge}: {reward.description}".strip())
        else:
            print_fn(f"[locked] {reward.badge}")


def _reset_flow(session: GameSession, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Erase all progress with explicit confirmation safeguard."""
    print_fn("WARNING: This permanently erases all progress, badges, and stats.")
    confirm = input_fn("Type yes to confirm: ").strip().lower()
    if confirm != "yes":
        print_fn("Reset cancelled.")
        return
    session.reset()
    print_fn("Progress reset. Type 'play' to start from Level 1.")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
