"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from swarm_manager.knowledge.repository import KnowledgeStore

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture(autouse=True)
def _agent_subprocess_pythonpath(monkeypatch: pytest.MonkeyPatch) -> None:
    """Let agent subprocesses import the package from a source checkout."""

    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        str(SRC_DIR) if not existing else os.pathsep.join((str(SRC_DIR), existing)),
    )


@pytest.fixture()
def knowledge(tmp_path: Path) -> Iterator[KnowledgeStore]:
    store = KnowledgeStore(tmp_path / "knowledge.db")
    store.init_schema()
    try:
        yield store
    finally:
        store.close()
