"""Core domain models for levels, task payloads, and player actions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Reward:
    """Badge and points granted when a level is completed."""

    badge_id: str
    badge: str
    points: int
    icon: str = ""
    description: str = ""


@dataclass(frozen=True)
class KnowledgeEntry:
    """One searchable knowledge-base entry."""

    id: int
    topic: str
    text: str


@dataclass(frozen=True)
class WorkflowStep:
    """One pipeline step; `prompt_template` holds an `{input}` placeholder."""

    id: int
    name: str
    description: str
    prompt_template: str

    def render(self, value: str) -> str:
        """Fill the template with the previous step's output."""
        return self.prompt_template.replace("{input}", value)


@dataclass(frozen=True)
class ToolTemplate:
    """Starting point offered to the player when building a tool."""

    id: str
    name: str
    description: str
    system_prompt: str


@dataclass(frozen=True)
class ToolDefinition:
    """Player-designed tool: a named system prompt."""

    name: str
    description: str
    system_prompt: str


@dataclass(frozen=True)
class SimplePromptTask:
    min_prompts: int
    default_prompt: str = ""


@dataclass(frozen=True)
class PromptImprovementTask:
    bad_prompt: str
    min_length: int = 50
    length_margin: int = 10
    tips: tuple[str, ...] = ()


@dataclass(frozen=True)
class EmbeddingSearchTask:
    knowledge_base: tuple[KnowledgeEntry, ...]
    min_searches: int
    relevance_threshold: float = 0.7
    sample_queries: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowPipelineTask:
    steps: tuple[WorkflowStep, ...]
    sample_input: str = ""


@dataclass(frozen=True)
class ToolBuilderTask:
    templates: tuple[ToolTemplate, ...]


TaskSpec = SimplePromptTask | PromptImprovementTask | EmbeddingSearchTask | WorkflowPipelineTask | ToolBuilderTask


@dataclass(frozen=True)
class Level:
    """One game level."""

    id: int
    title: str
    description: str
    objective: str
    instructions: tuple[str, ...]
    hints: tuple[str, ...]
    reward: Reward
    task: TaskSpec


@dataclass(frozen=True)
class PromptAction:
    text: str


@dataclass(frozen=True)
class SearchAction:
    query: str


@dataclass(frozen=True)
class RunWorkflowAction:
    topic: str = ""


@dataclass(frozen=True)
class CreateToolAction:
    definition: ToolDefinition


@dataclass(frozen=True)
class TestToolAction:
    __test__ = False

    input: str


PlayerAction = PromptAction | SearchAction | RunWorkflowAction | CreateToolAction | TestToolAction
