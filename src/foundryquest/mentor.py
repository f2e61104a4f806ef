"""Sage, the in-game mentor: hints, answers, and encouragement."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from .client import ModelClient, ServiceUnavailable
from .models import Level
from .progress import LevelRecord, PlayerStats

MENTOR_NAME = "Sage"
# Earlier question/answer turns replayed to the model, as messages.
HISTORY_LIMIT = 10

SYSTEM_PROMPT = f"""You are {MENTOR_NAME}, a friendly guide to running AI models locally.
You are helping a student learn about local model runtimes and AI development.

Your personality traits: encouraging, patient, knowledgeable, fun.

Guidelines:
- Be encouraging and celebrate small wins
- Explain concepts in simple, beginner-friendly terms
- Use analogies and real-world examples
- Keep responses concise but helpful
- If the student seems stuck, offer gentle hints

You are guiding the student through a learning game with 5 levels:
1. Meet the Model - Making first API calls
2. Prompt Mastery - Writing better prompts
3. Embeddings Explorer - Semantic search
4. Workflow Wizard - Building pipelines
5. Build Your Own Tool - Creating custom tools"""

FAQ = (
    (
        "what is a prompt",
        "A prompt is your message to an AI model: the instruction or question you give it. Good prompts are "
        "clear, specific, and include context.",
    ),
    (
        "what are embeddings",
        "Embeddings convert text into numbers that capture meaning. Similar concepts get similar numbers, so "
        "'happy' and 'joyful' end up close together. That enables search by meaning, not just keywords!",
    ),
    (
        "what is a workflow",
        "A workflow chains multiple AI operations together. Like a recipe, each step processes data and passes "
        "it to the next.",
    ),
    (
        "local model",
        "A local model runtime lets you run AI models directly on your computer: no internet needed, full "
        "privacy, and complete control.",
    ),
    (
        "help",
        "I can help with any level! Ask about a concept, or say 'level 3' and I'll point you in the right direction.",
    ),
)

DEFAULT_ANSWER = (
    "That's a great question! I'm running in demo mode right now, so my answers are limited. Try asking about "
    "prompts, embeddings, workflows, or help with a specific level!"
)

LEVEL_HELP = {
    1: "For Level 1, just have a conversation with the AI. Ask it questions, give it tasks, and see how it responds!",
    2: "In Level 2, remember: specific prompts get specific answers. Add context, format requirements, or constraints.",
    3: "Try searching for concepts rather than exact words. 'How to deploy' should match deployment content.",
    4: "Workflows chain operations together. Each step builds on the last. Start simple and watch it unfold!",
    5: "Creating tools is about defining clear purposes. What task would YOU want an AI assistant to do?",
}

LEVEL_PATTERN = re.compile(r"level\s*(\d+)")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HintResult:
    """One delivered hint (or the no-more-hints notice)."""

    message: str
    hints_remaining: int
    delivered: bool


class Mentor:
    """Mentor persona backed by the model client, with canned fallbacks."""

    def __init__(self, client: ModelClient) -> None:
        self.client = client
        self.history: list[dict[str, str]] = []

    def _say(self, prompt: str, fallback: str, history: Sequence[dict[str, str]] = ()) -> str:
        if self.client.demo_mode:
            return fallback
        try:
            return self.client.chat_with_system(SYSTEM_PROMPT, prompt, history=history, fallback=False)
        except ServiceUnavailable as exc:
            logger.warning("Mentor response unavailable, using fallback: %s", exc)
            return fallback

    def welcome(self, player_name: str) -> str:
        name = player_name or "adventurer"
        prompt = (
            f'A new player named "{name}" has just started the learning game. '
            "Give them a warm, exciting welcome in 2-3 sentences. Mention that you'll be their guide."
        )
        fallback = (
            f"Welcome, {name}! I'm {MENTOR_NAME}, your guide through the world of local AI. "
            "Together, we'll master AI development one level at a time. Let's begin your journey!"
        )
        return self._say(prompt, fallback)

    def introduce_level(self, level: Level) -> str:
        prompt = (
            f'The player is about to start Level {level.id}: "{level.title}".\n'
            f"The objective is: {level.objective}\n"
            "Give a brief, exciting introduction (2-3 sentences) that motivates them for this challenge."
        )
        first_sentence = level.description.split(".")[0]
        fallback = f"Welcome to Level {level.id}! {first_sentence}. Let me know if you need any help!"
        return self._say(prompt, fallback)

    def provide_hint(self, level: Level, hint_index: int) -> HintResult:
        """Deliver hint `hint_index`, or a notice once the list is used up."""
        if hint_index >= len(level.hints):
            notice = "You've used all the hints for this level! I believe in you. Try experimenting a bit more!"
            return HintResult(message=notice, hints_remaining=0, delivered=False)

        hint = level.hints[hint_index]
        prompt = (
            f"The player needs a hint for Level {level.id}.\n"
            f'The hint is: "{hint}"\n'
            "Deliver this hint in an encouraging way, in 1-2 sentences."
        )
        message = self._say(prompt, f"Here's a hint: {hint}")
        return HintResult(message=message, hints_remaining=len(level.hints) - hint_index - 1, delivered=True)

    def answer_question(self, question: str, level: Level | None = None) -> str:
        if level is not None:
            context = f"The player is currently on Level {level.id}: {level.title}. Objective: {level.objective}"
        else:
            context = "The player is in the main menu."
        prompt = (
            f'{context}\n\nThe player asks: "{question}"\n\n'
            "Provide a helpful, beginner-friendly answer. Keep it concise (2-4 sentences)."
        )
        answer = self._say(prompt, offline_answer(question), self.history)
        self.history.append({"role": "user", "content": question})
        self.history.append({"role": "assistant", "content": answer})
        del self.history[:-HISTORY_LIMIT]
        return answer

    def explain_concept(self, concept: str) -> str:
        prompt = (
            f'The player wants to understand: "{concept}"\n\n'
            "Explain this concept in simple terms: a one-sentence definition, a real-world analogy, "
            "and why it's useful in AI development. Keep it under 5 sentences."
        )
        fallback = (
            f"That's a great concept to learn about! {concept} is an important part of working with AI. "
            "Ask me specific questions about it, or check the documentation of your model runtime."
        )
        return self._say(prompt, fallback)

    def celebrate(self, level: Level, record: LevelRecord | None = None) -> str:
        details = f"Time taken: {record.time_spent} seconds. Hints used: {record.hints_used}." if record else ""
        prompt = (
            f'The player just completed Level {level.id}: "{level.title}"!\n'
            f'They earned the "{level.reward.badge}" badge and {level.reward.points} points.\n{details}\n'
            "Give them an enthusiastic celebration message (2-3 sentences)."
        )
        fallback = (
            f"AMAZING! You've conquered {level.title} and earned the {level.reward.badge} badge! "
            f"That's {level.reward.points} points added to your score."
        )
        return self._say(prompt, fallback)

    def encourage_retry(self, level: Level, problem: str = "") -> str:
        prompt = (
            f'The player had trouble with Level {level.id}: "{level.title}".\n'
            f"Issue: {problem or 'The task was not completed correctly.'}\n"
            "Give them encouragement (1-2 sentences) and suggest they try again or ask for a hint."
        )
        fallback = "Don't worry, even the best developers debug their code! Take another look, or ask for a hint."
        return self._say(prompt, fallback)

    def progress_update(self, stats: PlayerStats, completed: int, total: int) -> str:
        prompt = (
            "The player's current progress:\n"
            f"- Total points: {stats.total_points}\n"
            f"- Levels completed: {completed} out of {total}\n"
            f"- Prompts sent: {stats.total_prompts_sent}\n"
            f"- Play time: {round(stats.total_play_time / 60)} minutes\n\n"
            "Give them a brief progress update (2-3 sentences) with encouragement."
        )
        percentage = round(100 * completed / total) if total else 0
        if completed == 0:
            cheer = "Let's get started!"
        elif completed >= total:
            cheer = "You're a true AI Champion!"
        else:
            cheer = "Keep up the great work!"
        fallback = (
            f"You've completed {completed}/{total} levels ({percentage}%) with {stats.total_points} points! {cheer}"
        )
        return self._say(prompt, fallback)

    def goodbye(self, stats: PlayerStats) -> str:
        prompt = (
            f"The player is leaving the game. They have {stats.total_points} points and completed "
            f"{stats.levels_completed} levels. Give them a friendly goodbye (1-2 sentences)."
        )
        fallback = "Thanks for playing! Your progress is saved, so come back anytime to continue your adventure."
        return self._say(prompt, fallback)


def offline_answer(question: str) -> str:
    """Answer from the FAQ table; a `level N` mention picks per-level help."""
    lowered = question.lower()
    answer = DEFAULT_ANSWER
    for key, value in FAQ:
        if key in lowered:
            answer = value
            break
    match = LEVEL_PATTERN.search(lowered)
    if match:
        answer = LEVEL_HELP.get(int(match.group(1)), answer)
    return answer
