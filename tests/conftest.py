"""Shared fixtures: in-memory storage and stub LLM collaborators."""
from typing import Dict, List, Optional

import pytest

from docchat.db import InMemoryStorage, SQLiteStorage
from docchat.errors import EmbeddingError, GenerationError


class StubEmbedder:
    """Returns fixed vectors per text, recording every call.

    Texts not in ``vectors`` get ``default``. Texts containing any of
    ``fail_on`` raise EmbeddingError.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        fail_on: tuple = (),
    ):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail_on = fail_on
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f"provider refused: {text[:20]}")
        return list(self.vectors.get(text, self.default))


class StubGenerator:
    """Captures the prompt it receives and returns a canned reply."""

    def __init__(self, reply: str = "stub reply", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.calls: List[tuple] = []

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1][0]

    @property
    def last_history(self) -> List[Dict[str, str]]:
        return self.calls[-1][1]

    async def generate(self, system_prompt: str, history: List[Dict[str, str]]) -> str:
        self.calls.append((system_prompt, [dict(m) for m in history]))
        if self.fail:
            raise GenerationError("provider unavailable")
        return self.reply


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def sqlite_storage(tmp_path):
    return SQLiteStorage(tmp_path / "test.sqlite")


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Both storage implementations, for behaviour they must share."""
    if request.param == "memory":
        return InMemoryStorage()
    return SQLiteStorage(tmp_path / "test.sqlite")


@pytest.fixture
def embedder():
    return StubEmbedder()


@pytest.fixture
def generator():
    return StubGenerator()
