"""Per-task-type evaluation of player actions against level completion criteria."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TypeVar, assert_never

from .client import ModelClient, ServiceUnavailable
from .models import (
    CreateToolAction,
    EmbeddingSearchTask,
    Level,
    PlayerAction,
    PromptAction,
    PromptImprovementTask,
    Reward,
    RunWorkflowAction,
    SearchAction,
    SimplePromptTask,
    TestToolAction,
    ToolBuilderTask,
    ToolDefinition,
    ToolTemplate,
    WorkflowPipelineTask,
)
from .progress import LevelRecord
from .similarity import SearchResult, rank_by_embedding, rank_by_keywords

StateT = TypeVar("StateT")

logger = logging.getLogger(__name__)


@dataclass
class SimplePromptState:
    prompt_count: int = 0
    responses: list[str] = field(default_factory=list)


@dataclass
class PromptImprovementState:
    improved_submitted: bool = False
    bad_response: str | None = None
    good_response: str | None = None


@dataclass
class EmbeddingSearchState:
    search_count: int = 0
    relevant_found: bool = False
    last_results: tuple[SearchResult, ...] = ()
    entry_vectors: dict[int, list[float]] = field(default_factory=dict)


@dataclass
class WorkflowState:
    step_outputs: list[str] = field(default_factory=list)
    failed_step: str | None = None
    completed: bool = False


@dataclass
class ToolBuilderState:
    tool: ToolDefinition | None = None
    tool_created: bool = False
    tool_tested: bool = False
    test_runs: int = 0


TaskState = SimplePromptState | PromptImprovementState | EmbeddingSearchState | WorkflowState | ToolBuilderState


@dataclass(frozen=True)
class Completion:
    """Reward summary attached to the outcome that finished a level."""

    level: Level
    record: LevelRecord
    reward: Reward
    next_level_unlocked: bool
    celebration: str = ""
    first_completion: bool = True


@dataclass(frozen=True)
class TaskOutcome:
    """Result of one player action.

    `accepted` is False for locally rejected input, which never changes task
    counters. `sent_prompt` reports whether the action reached the model.
    """

    accepted: bool
    completed: bool = False
    message: str = ""
    response: str | None = None
    baseline: str | None = None
    results: tuple[SearchResult, ...] = ()
    failed_step: str | None = None
    step_outputs: tuple[str, ...] = ()
    sent_prompt: bool = False
    completion: Completion | None = None


def reject(message: str) -> TaskOutcome:
    return TaskOutcome(accepted=False, message=message)


def new_task_state(level: Level) -> TaskState:
    """Fresh counters for one attempt at a level."""
    match level.task:
        case SimplePromptTask():
            return SimplePromptState()
        case PromptImprovementTask():
            return PromptImprovementState()
        case EmbeddingSearchTask():
            return EmbeddingSearchState()
        case WorkflowPipelineTask():
            return WorkflowState()
        case ToolBuilderTask():
            return ToolBuilderState()
        case _ as unreachable:
            assert_never(unreachable)


def evaluate(level: Level, state: TaskState, action: PlayerAction, client: ModelClient) -> TaskOutcome:
    """Apply one action to the attempt state and report pass/fail."""
    task = level.task
    match task:
        case SimplePromptTask():
            if not isinstance(action, PromptAction):
                return _wrong_action(level)
            return _simple_prompt(task, _expect(state, SimplePromptState), action, client)
        case PromptImprovementTask():
            if not isinstance(action, PromptAction):
                return _wrong_action(level)
            return _prompt_improvement(task, _expect(state, PromptImprovementState), action, client)
        case EmbeddingSearchTask():
            if not isinstance(action, SearchAction):
                return _wrong_action(level)
            return _embedding_search(task, _expect(state, EmbeddingSearchState), action, client)
        case WorkflowPipelineTask():
            if not isinstance(action, RunWorkflowAction):
                return _wrong_action(level)
            return _workflow(task, _expect(state, WorkflowState), action, client)
        case ToolBuilderTask():
            tool_state = _expect(state, ToolBuilderState)
            if isinstance(action, CreateToolAction):
                return _create_tool(tool_state, action)
            if isinstance(action, TestToolAction):
                return _test_tool(tool_state, action, client)
            return _wrong_action(level)
        case _ as unreachable:
            assert_never(unreachable)


def _expect(state: TaskState, kind: type[StateT]) -> StateT:
    if not isinstance(state, kind):
        raise TypeError(f"Expected {kind.__name__}, got {type(state).__name__}")
    return state


def _wrong_action(level: Level) -> TaskOutcome:
    return reject(f"That action doesn't apply to Level {level.id}: {level.title}.")


def _simple_prompt(
    task: SimplePromptTask, state: SimplePromptState, action: PromptAction, client: ModelClient
) -> TaskOutcome:
    text = action.text.strip()
    if not text:
        return reject("Please type a message first! Try asking a question or giving a greeting.")

    response = client.chat(text)
    state.prompt_count += 1
    state.responses.append(response)

    if state.prompt_count >= task.min_prompts:
        message = "Excellent! You've completed the required prompts. Great job communicating with the AI!"
        return TaskOutcome(accepted=True, completed=True, message=message, response=response, sent_prompt=True)
    remaining = task.min_prompts - state.prompt_count
    message = f"Great! That's {state.prompt_count} prompt(s). Try {remaining} more to complete this level."
    return TaskOutcome(accepted=True, message=message, response=response, sent_prompt=True)


def required_length(task: PromptImprovementTask) -> int:
    """Shortest improved prompt that passes both length checks."""
    return max(task.min_length, len(task.bad_prompt) + task.length_margin + 1)


def _prompt_improvement(
    task: PromptImprovementTask, state: PromptImprovementState, action: PromptAction, client: ModelClient
) -> TaskOutcome:
    text = action.text.strip()
    if not text:
        return reject("Write your improved prompt first! Make it more specific and detailed.")
    if len(text) < task.min_length or len(text) <= len(task.bad_prompt) + task.length_margin:
        return reject(
            "Your prompt is a bit short. Try adding more details: who is the audience? what format? "
            f"how detailed? Aim for at least {required_length(task)} characters."
        )

    state.bad_response = client.chat(task.bad_prompt)
    state.good_response = client.chat(text)
    state.improved_submitted = True
    return TaskOutcome(
        accepted=True,
        completed=True,
        message="Great job! Your specific prompt got a more detailed, more useful response. That's prompt engineering!",
        response=state.good_response,
        baseline=state.bad_response,
        sent_prompt=True,
    )


def _rank(
    task: EmbeddingSearchTask, state: EmbeddingSearchState, query: str, client: ModelClient
) -> list[SearchResult]:
    """Rank by embeddings, or by keyword overlap when embeddings are unavailable."""
    try:
        query_vector = client.embed(query, fallback=False)
        for entry in task.knowledge_base:
            if entry.id not in state.entry_vectors:
                state.entry_vectors[entry.id] = client.embed(entry.text, fallback=False)
    except ServiceUnavailable as exc:
        logger.warning("Embeddings unavailable, ranking by keywords: %s", exc)
        return rank_by_keywords(query, task.knowledge_base)
    return rank_by_embedding(query_vector, ((entry, state.entry_vectors[entry.id]) for entry in task.knowledge_base))


def _embedding_search(
    task: EmbeddingSearchTask, state: EmbeddingSearchState, action: SearchAction, client: ModelClient
) -> TaskOutcome:
    query = action.query.strip()
    if not query:
        return reject("Enter a search query! Try asking about authentication, databases, or performance.")

    results = _rank(task, state, query, client)
    state.search_count += 1
    state.last_results = tuple(results)

    best = results[0]
    if best.score > task.relevance_threshold:
        state.relevant_found = True
        message = (
            f'Great search! Found relevant content about "{best.entry.topic}" with '
            f"{round(best.score * 100)}% similarity."
        )
    else:
        message = f'Searched! The closest match was about "{best.entry.topic}". Try different wording.'

    completed = state.search_count >= task.min_searches
    if completed:
        message += " You've mastered semantic search!"
    return TaskOutcome(
        accepted=True, completed=completed, message=message, results=state.last_results, sent_prompt=True
    )


def _workflow(
    task: WorkflowPipelineTask, state: WorkflowState, action: RunWorkflowAction, client: ModelClient
) -> TaskOutcome:
    current = action.topic.strip() or task.sample_input.strip()
    if not current:
        return reject("Enter a topic first! What would you like to learn about?")

    state.step_outputs = []
    state.failed_step = None
    state.completed = False
    for step in task.steps:
        try:
            output = client.chat(step.render(current), fallback=False)
        except ServiceUnavailable as exc:
            logger.warning("Workflow step %d (%s) failed: %s", step.id, step.name, exc)
            state.failed_step = step.name
            return TaskOutcome(
                accepted=True,
                message=f"Step {step.id} ({step.name}) failed, so the pipeline stopped. Try running it again.",
                failed_step=step.name,
                step_outputs=tuple(state.step_outputs),
                sent_prompt=True,
            )
        state.step_outputs.append(output)
        current = output

    state.completed = True
    return TaskOutcome(
        accepted=True,
        completed=True,
        message="Amazing! Each step built upon the previous one. That's how real AI pipelines work!",
        response=current,
        step_outputs=tuple(state.step_outputs),
        sent_prompt=True,
    )


def definition_from_template(template: ToolTemplate) -> ToolDefinition:
    return ToolDefinition(name=template.name, description=template.description, system_prompt=template.system_prompt)


def _create_tool(state: ToolBuilderState, action: CreateToolAction) -> TaskOutcome:
    definition = action.definition
    name = definition.name.strip()
    description = definition.description.strip()
    system_prompt = definition.system_prompt.strip()
    if not name or not description or not system_prompt:
        return reject("Please fill in all fields! Your tool needs a name, description, and system prompt.")

    state.tool = ToolDefinition(name=name, description=description, system_prompt=system_prompt)
    state.tool_created = True
    state.tool_tested = False
    return TaskOutcome(accepted=True, message=f'Great! You\'ve created "{name}"! Now test it to see how it works.')


def demo_tool_response(tool: ToolDefinition, text: str) -> str:
    """Canned tool output shaped by the tool's system prompt."""
    prefix = f'Using your "{tool.name}" tool on the input:\n\n'
    lowered = tool.system_prompt.lower()
    if "summar" in lowered:
        return prefix + (
            "Summary: The text discusses key concepts related to the topic at hand. Main points include "
            "proper implementation, best practices for efficiency, and considerations for future development."
        )
    if "code" in lowered or "debug" in lowered:
        return prefix + (
            "Code Analysis: The code structure looks reasonable. Consider:\n"
            "- Adding error handling\n- Using more descriptive variable names\n- Adding comments for complex logic"
        )
    return prefix + (
        f'Based on my instructions as "{tool.name}", I\'ve analyzed your input and provided a helpful response! '
        "This demonstrates how custom AI tools can be specialized for specific tasks."
    )


def _test_tool(state: ToolBuilderState, action: TestToolAction, client: ModelClient) -> TaskOutcome:
    tool = state.tool
    if not state.tool_created or tool is None:
        return reject("Create your tool first: give it a name, description, and system prompt.")
    text = action.input.strip()
    if not text:
        return reject("Enter some test input for your tool!")

    state.test_runs += 1
    if client.demo_mode:
        response = demo_tool_response(tool, text)
    else:
        try:
            content = client.chat_with_system(tool.system_prompt, text, fallback=False)
        except ServiceUnavailable as exc:
            logger.warning("Tool test for %r failed: %s", tool.name, exc)
            return TaskOutcome(
                accepted=True,
                message="Your tool call didn't go through. Nothing is lost, so try testing it again.",
                sent_prompt=True,
            )
        response = f'Using your "{tool.name}" tool:\n\n{content}'

    state.tool_tested = True
    return TaskOutcome(
        accepted=True,
        completed=True,
        message="Congratulations! You've built and tested your very own AI tool.",
        response=response,
        sent_prompt=True,
    )
