"""HTTP client for a local OpenAI-compatible model runtime, with demo fallbacks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
import numpy as np

from .config import Settings

EMBEDDING_DIM = 128
CHAT_MODEL_MARKERS = ("instruct", "chat", "phi")
NO_RESPONSE = "No response received."

DEMO_RESPONSES = {
    "greeting": (
        "Hello! I'm a demo AI assistant. With a local model runtime running you'd get intelligent, "
        "contextual responses. For now, I'm simulating the experience so you can learn the game flow!"
    ),
    "prompt": (
        "This is a simulated response. When the local model runtime is running, you'll see actual "
        "AI-generated content here. The concepts you're learning apply directly to how real AI models work!"
    ),
    "summary": (
        "AI is transforming technology through machine learning and neural networks, enabling "
        "applications from virtual assistants to medical diagnosis."
    ),
    "keywords": "AI, machine learning, deep learning, neural networks, NLP",
    "questions": (
        "1. What is the difference between AI and machine learning?\n"
        "2. How do neural networks process information?\n"
        "3. What are some real-world applications of NLP?"
    ),
    "explanation": (
        "This subtopic covers the core building blocks. It's essential to grasp these basics, like setup, "
        "configuration and first implementation steps, before moving to advanced topics."
    ),
    "subtopics": (
        "Here are 3 important subtopics:\n"
        "1. Fundamental concepts and terminology\n"
        "2. Practical applications and use cases\n"
        "3. Best practices and common patterns"
    ),
}

logger = logging.getLogger(__name__)


class ServiceUnavailable(Exception):
    """The model runtime could not produce a usable response."""


def demo_response(message: str) -> str:
    """Pick canned text by keyword; never fails."""
    lowered = (message or "").lower()
    if "hello" in lowered or "introduce" in lowered:
        return DEMO_RESPONSES["greeting"]
    if "summary" in lowered or "summarize" in lowered:
        return DEMO_RESPONSES["summary"]
    if "keyword" in lowered:
        return DEMO_RESPONSES["keywords"]
    if "question" in lowered:
        return DEMO_RESPONSES["questions"]
    if "explain" in lowered:
        return DEMO_RESPONSES["explanation"]
    if "subtopic" in lowered:
        return DEMO_RESPONSES["subtopics"]
    return DEMO_RESPONSES["prompt"]


def _bucket(token: str, dim: int) -> int:
    """Sum of the token's UTF-16 code units, modulo `dim`."""
    units = np.frombuffer(token.encode("utf-16-le"), dtype="<u2")
    return int(units.sum()) % dim


def pseudo_embedding(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic bag-of-words hash vector, L2-normalized.

    Each whitespace token lands in bucket `_bucket(token, dim)` and
    contributes `1 / (position + 1)`. Characters outside the BMP count as
    two code units (a surrogate pair).
    """
    vector = np.zeros(dim)
    for position, token in enumerate((text or "").lower().split()):
        vector[_bucket(token, dim)] += 1.0 / (position + 1)
    magnitude = np.linalg.norm(vector)
    return (vector / (magnitude or 1.0)).tolist()


def select_chat_model(available: list[str], preferred: str | None = None) -> str | None:
    """Choose the configured model if present, else the first chat-looking one."""
    if preferred and (not available or preferred in available):
        return preferred
    for model_id in available:
        lowered = model_id.lower()
        if any(marker in lowered for marker in CHAT_MODEL_MARKERS):
            return model_id
    return available[0] if available else preferred


class ModelClient:
    """Chat and embedding access that degrades to demo mode instead of failing."""

    def __init__(self, settings: Settings | None = None, *, http: httpx.Client | None = None) -> None:
        self.settings = settings or Settings()
        self._http = http or httpx.Client()
        self._owns_http = http is None
        self.base_url: str | None = None
        self.model: str | None = self.settings.model
        self.available_models: list[str] = []
        self.initialized = False

    @property
    def demo_mode(self) -> bool:
        return not self.initialized

    def __enter__(self) -> ModelClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def initialize(self) -> bool:
        """Probe each candidate endpoint; stay in demo mode if none answers."""
        self.initialized = False
        if self.settings.offline:
            logger.info("Offline mode requested; using demo responses")
            return False

        for base_url in self.settings.base_urls:
            try:
                response = self._http.get(f"{base_url}/v1/models", timeout=self.settings.probe_timeout)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.debug("No model runtime at %s: %s", base_url, exc)
                continue

            models = _model_ids(payload)
            self.base_url = base_url
            self.available_models = models
            self.model = select_chat_model(models, self.settings.model)
            self.initialized = True
            logger.info("Connected to %s (model=%s, available=%s)", base_url, self.model, ", ".join(models))
            return True

        logger.warning("Model runtime not detected; running in demo mode")
        return False

    def chat(self, message: str, *, fallback: bool = True) -> str:
        """Send one user message."""
        messages = [{"role": "user", "content": message}]
        return self._chat(messages, self.settings.chat_max_tokens, message, fallback)

    def chat_with_system(
        self,
        system: str,
        message: str,
        *,
        history: Sequence[dict[str, str]] = (),
        fallback: bool = True,
    ) -> str:
        """Send a system prompt, any earlier turns, then one user message."""
        messages = [{"role": "system", "content": system}, *history, {"role": "user", "content": message}]
        return self._chat(messages, self.settings.system_max_tokens, message, fallback)

    def _chat(self, messages: list[dict[str, str]], max_tokens: int, message: str, fallback: bool) -> str:
        if self.demo_mode:
            return demo_response(message)
        try:
            return self.complete(messages, max_tokens=max_tokens)
        except ServiceUnavailable as exc:
            if not fallback:
                raise
            logger.warning("Chat request failed, using demo response: %s", exc)
            return demo_response(message)

    def complete(self, messages: list[dict[str, str]], *, max_tokens: int | None = None) -> str:
        """POST a chat completion; raises ServiceUnavailable on any failure."""
        if self.demo_mode:
            raise ServiceUnavailable("client is in demo mode")
        body = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens or self.settings.chat_max_tokens,
            "temperature": self.settings.temperature,
        }
        payload = self._post("/v1/chat/completions", body)
        try:
            content = payload["choices"][0]["message"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ServiceUnavailable(f"malformed chat response: {exc}") from exc
        return str(content) if content else NO_RESPONSE

    def embed(self, text: str, *, fallback: bool = True) -> list[float]:
        """Embed text; demo mode (or failure with fallback) yields a pseudo-embedding."""
        if self.demo_mode:
            return pseudo_embedding(text)
        try:
            payload = self._post("/v1/embeddings", {"model": self.settings.embedding_model, "input": text})
            try:
                vector = payload["data"][0]["embedding"]
                return [float(value) for value in vector]
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                raise ServiceUnavailable(f"malformed embedding response: {exc}") from exc
        except ServiceUnavailable as exc:
            if not fallback:
                raise
            logger.warning("Embedding request failed, using pseudo-embedding: %s", exc)
            return pseudo_embedding(text)

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        try:
            response = self._http.post(f"{self.base_url}{path}", json=body, timeout=self.settings.request_timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise ServiceUnavailable(f"{path} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ServiceUnavailable(f"{path} request failed: {exc}") from exc
        except ValueError as exc:
            raise ServiceUnavailable(f"{path} returned invalid JSON") from exc


def _model_ids(payload: Any) -> list[str]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or []
    return [str(item["id"]) for item in data if isinstance(item, dict) and item.get("id")]
