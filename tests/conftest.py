"""Shared test fixtures."""

from pathlib import Path

import pytest

from src.config import Settings
from src.conversation.history import ChannelHistory
from src.cortex.store import CortexChatStore
from src.runtime_config import RuntimeConfig


@pytest.fixture
def store(tmp_path: Path) -> CortexChatStore:
    """A CortexChatStore backed by a temp database."""
    return CortexChatStore(db_path=tmp_path / "test.db")


@pytest.fixture
async def history(tmp_path: Path) -> ChannelHistory:
    """A ChannelHistory with its tables created, sharing the store's database."""
    h = ChannelHistory(db_path=tmp_path / "test.db")
    await h.ensure_schema()
    return h


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def runtime_config(tmp_path: Path, config_dir: Path) -> RuntimeConfig:
    """RuntimeConfig pointed at an empty identity dir and the bundled templates."""
    return RuntimeConfig(Settings(config_dir=config_dir, database_path=tmp_path / "test.db"))
