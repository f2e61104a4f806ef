"""foundryquest: a guided game for learning local AI development."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]


def _source_checkout_version() -> str | None:
    """Version from the nearest pyproject.toml when running from a checkout."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.is_file():
            continue
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            return None
        project = data.get("project", {})
        if project.get("name") != "foundryquest":
            return None
        return project.get("version")
    return None


def _installed_version() -> str:
    try:
        return version("foundryquest")
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _source_checkout_version() or _installed_version()
