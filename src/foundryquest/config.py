"""Runtime settings loaded from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PORTS = (5272, 61341, 5000, 8080)
DEFAULT_BASE_URLS = tuple(f"http://127.0.0.1:{port}" for port in DEFAULT_PORTS)
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_PROGRESS_PATH = Path(".foundryquest") / "progress.json"
ENV_PREFIX = "FOUNDRYQUEST_"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Connection, persistence, and logging settings."""

    base_urls: tuple[str, ...] = DEFAULT_BASE_URLS
    model: str | None = None
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    probe_timeout: float = 2.0
    request_timeout: float = 60.0
    chat_max_tokens: int = 500
    system_max_tokens: int = 300
    temperature: float = 0.7
    progress_path: Path = field(default=DEFAULT_PROGRESS_PATH)
    log_level: str = "WARNING"
    offline: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from `FOUNDRYQUEST_*` variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        raw_urls = get("BASE_URL")
        base_urls = defaults.base_urls
        if raw_urls is not None:
            base_urls = tuple(url.strip().rstrip("/") for url in raw_urls.split(",") if url.strip())

        progress_path = get("PROGRESS_PATH")
        return cls(
            base_urls=base_urls or defaults.base_urls,
            model=get("MODEL"),
            embedding_model=get("EMBEDDING_MODEL") or defaults.embedding_model,
            probe_timeout=_float(get("PROBE_TIMEOUT"), defaults.probe_timeout),
            request_timeout=_float(get("REQUEST_TIMEOUT"), defaults.request_timeout),
            progress_path=Path(progress_path) if progress_path else defaults.progress_path,
            log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
            offline=_flag(get("OFFLINE")),
        )


def _float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Ignoring invalid numeric setting %r", value)
        return default
    return parsed if parsed > 0 else default


def _flag(value: str | None) -> bool:
    return value is not None and value.lower() in {"1", "true", "yes", "on"}
