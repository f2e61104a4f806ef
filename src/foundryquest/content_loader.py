"""Load declarative level content from bundled JSON resources."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any

from .models import (
    EmbeddingSearchTask,
    KnowledgeEntry,
    Level,
    PromptImprovementTask,
    Reward,
    SimplePromptTask,
    TaskSpec,
    ToolBuilderTask,
    ToolTemplate,
    WorkflowPipelineTask,
    WorkflowStep,
)

CONTENT_PACKAGE = "foundryquest"
LEVELS_RESOURCE = ("content", "levels.json")

logger = logging.getLogger(__name__)


class ContentLoadError(ValueError):
    """Level content is missing or malformed; the game cannot start."""


def _require(raw: dict[str, Any], key: str, context: str) -> Any:
    if key not in raw:
        raise ContentLoadError(f"{context} is missing required field '{key}'.")
    return raw[key]


def _strings(values: Any) -> tuple[str, ...]:
    return tuple(str(value) for value in (values or []) if str(value).strip())


def _reward_from_dict(level_id: int, raw: dict[str, Any]) -> Reward:
    """Build a reward; points must be positive."""
    context = f"Level {level_id} reward"
    points = int(_require(raw, "points", context))
    if points <= 0:
        raise ContentLoadError(f"{context} must grant positive points, got {points}.")
    badge = str(_require(raw, "badge", context))
    return Reward(
        badge_id=str(raw.get("badgeId") or badge),
        badge=badge,
        points=points,
        icon=str(raw.get("icon", "")),
        description=str(raw.get("description", "")),
    )


def _simple_prompt_task(raw: dict[str, Any]) -> SimplePromptTask:
    min_prompts = int(raw.get("minPrompts", 1))
    if min_prompts < 1:
        raise ContentLoadError("simple_prompt task needs minPrompts >= 1.")
    return SimplePromptTask(min_prompts=min_prompts, default_prompt=str(raw.get("defaultPrompt", "")))


def _prompt_improvement_task(raw: dict[str, Any]) -> PromptImprovementTask:
    bad_prompt = str(_require(raw, "badPrompt", "prompt_improvement task")).strip()
    if not bad_prompt:
        raise ContentLoadError("prompt_improvement task has an empty badPrompt.")
    return PromptImprovementTask(
        bad_prompt=bad_prompt,
        min_length=int(raw.get("minLength", 50)),
        length_margin=int(raw.get("lengthMargin", 10)),
        tips=_strings(raw.get("tips")),
    )


def _embedding_search_task(raw: dict[str, Any]) -> EmbeddingSearchTask:
    entries = tuple(
        KnowledgeEntry(
            id=int(_require(item, "id", "knowledge entry")),
            topic=str(_require(item, "topic", "knowledge entry")),
            text=str(_require(item, "text", "knowledge entry")),
        )
        for item in _require(raw, "knowledgeBase", "embedding_search task")
    )
    if not entries:
        raise ContentLoadError("embedding_search task has an empty knowledge base.")
    return EmbeddingSearchTask(
        knowledge_base=entries,
        min_searches=int(raw.get("minSearches", 1)),
        relevance_threshold=float(raw.get("relevanceThreshold", 0.7)),
        sample_queries=_strings(raw.get("sampleQueries")),
    )


def _workflow_task(raw: dict[str, Any]) -> WorkflowPipelineTask:
    steps = tuple(
        WorkflowStep(
            id=int(_require(item, "id", "workflow step")),
            name=str(_require(item, "name", "workflow step")),
            description=str(item.get("description", "")),
            prompt_template=str(_require(item, "promptTemplate", "workflow step")),
        )
        for item in _require(raw, "steps", "workflow_pipeline task")
    )
    if not steps:
        raise ContentLoadError("workflow_pipeline task has no steps.")
    for expected, step in enumerate(steps, start=1):
        if step.id != expected:
            raise ContentLoadError(f"Workflow step ids must be sequential from 1; found {step.id} at {expected}.")
        if "{input}" not in step.prompt_template:
            raise ContentLoadError(f"Workflow step '{step.name}' prompt template has no {{input}} placeholder.")
    return WorkflowPipelineTask(steps=steps, sample_input=str(raw.get("sampleInput", "")))


def _tool_builder_task(raw: dict[str, Any]) -> ToolBuilderTask:
    templates = tuple(
        ToolTemplate(
            id=str(_require(item, "id", "tool template")),
            name=str(_require(item, "name", "tool template")),
            description=str(item.get("description", "")),
            system_prompt=str(item.get("systemPrompt", "")),
        )
        for item in raw.get("templates", [])
    )
    return ToolBuilderTask(templates=templates)


TASK_BUILDERS = {
    "simple_prompt": _simple_prompt_task,
    "prompt_improvement": _prompt_improvement_task,
    "embedding_search": _embedding_search_task,
    "workflow_pipeline": _workflow_task,
    "tool_builder": _tool_builder_task,
}


def _task_from_dict(level_id: int, task_type: str, raw: dict[str, Any]) -> TaskSpec:
    builder = TASK_BUILDERS.get(task_type)
    if builder is None:
        raise ContentLoadError(f"Level {level_id} has unknown taskType '{task_type}'.")
    return builder(raw)


def _level_from_dict(raw: dict[str, Any]) -> Level:
    """Build a level from raw JSON content."""
    level_id = int(_require(raw, "id", "Level"))
    context = f"Level {level_id}"
    return Level(
        id=level_id,
        title=str(_require(raw, "title", context)),
        description=str(raw.get("description", "")),
        objective=str(_require(raw, "objective", context)),
        instructions=_strings(raw.get("instructions")),
        hints=_strings(raw.get("hints")),
        reward=_reward_from_dict(level_id, _require(raw, "reward", context)),
        task=_task_from_dict(level_id, str(_require(raw, "taskType", context)), raw.get("task", {})),
    )


def parse_levels(raw: Any) -> tuple[Level, ...]:
    """Parse and validate a catalog document."""
    if not isinstance(raw, dict) or not isinstance(raw.get("levels"), list):
        raise ContentLoadError("Level catalog must be an object with a 'levels' array.")
    try:
        levels = [_level_from_dict(item) for item in raw["levels"]]
    except ContentLoadError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ContentLoadError(f"Malformed level catalog: {exc}") from exc
    levels.sort(key=lambda item: item.id)
    _validate_level_ids(levels)
    _validate_unique_badges(levels)
    return tuple(levels)


def load_levels() -> tuple[Level, ...]:
    """Load bundled levels."""
    resource = resources.files(CONTENT_PACKAGE).joinpath(*LEVELS_RESOURCE)
    try:
        text = resource.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ContentLoadError(f"Could not read bundled level catalog: {exc}") from exc
    levels = _parse_text(text, "bundled level catalog")
    logger.info("Loaded %d levels", len(levels))
    return levels


def load_levels_from_path(path: Path) -> tuple[Level, ...]:
    """Load levels from a JSON file for tests/tools."""
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ContentLoadError(f"Could not read level catalog {path}: {exc}") from exc
    return _parse_text(text, str(path))


def _parse_text(text: str, source: str) -> tuple[Level, ...]:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ContentLoadError(f"Invalid JSON in {source}: {exc}") from exc
    return parse_levels(raw)


def _validate_level_ids(levels: list[Level]) -> None:
    """Validate that level ids form the contiguous sequence 1..N."""
    if not levels:
        raise ContentLoadError("Level catalog contains no levels.")
    ids = [level.id for level in levels]
    expected = list(range(1, len(levels) + 1))
    if ids != expected:
        raise ContentLoadError(f"Level ids must be contiguous from 1; got {ids}.")


def _validate_unique_badges(levels: list[Level]) -> None:
    """Validate that badge ids are unique across levels."""
    seen: dict[str, int] = {}
    for level in levels:
        previous = seen.get(level.reward.badge_id)
        if previous is not None:
            raise ContentLoadError(
                f"Duplicate badge id: {level.reward.badge_id} (in levels {previous} and {level.id})"
            )
        seen[level.reward.badge_id] = level.id
