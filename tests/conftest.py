"""Pytest configuration and fixtures for the filesystem connector tests."""

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from fsconnector.fs.manifest import InMemoryContentStore
from fsconnector.routes.schemas import ChangeRequest, UploadParameters


def _load_project_dotenv() -> None:
    """Load environment variables from the project .env file if present."""

    repo_root = Path(__file__).resolve().parents[1]
    env_path = repo_root / ".env"
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")

        if key and value and key not in os.environ:
            os.environ[key] = value


_load_project_dotenv()


@pytest.fixture(autouse=True)
def _isolated_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer configuration out of the tests."""
    monkeypatch.delenv("FSCONNECTOR_CONFIG", raising=False)
    monkeypatch.delenv("FSCONNECTOR_EXPOSED_PATH", raising=False)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """An empty repository directory."""
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def content() -> InMemoryContentStore:
    """An empty content-part store."""
    return InMemoryContentStore()


@pytest.fixture
def parameters() -> UploadParameters:
    """Valid upload parameters."""
    return UploadParameters(commit_id="c-001", comment="test upload")


@pytest.fixture
def change() -> Callable[..., ChangeRequest]:
    """Factory for manifest entries using the wire field names."""

    def _make(index: int, type: str, id: str, **fields: Any) -> ChangeRequest:
        return ChangeRequest.model_validate(
            {"index": index, "type": type, "id": id, **fields}
        )

    return _make
