import tomllib
from pathlib import Path

import foundryquest


def test_package_version_matches_pyproject() -> None:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    project = tomllib.loads(pyproject.read_text(encoding="utf-8"))["project"]
    assert project["name"] == "foundryquest"
    assert foundryquest.__version__ == project["version"]
