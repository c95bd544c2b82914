"""Tests for CortexChatSession — the send/save/error cycle."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.config import Settings
from src.cortex.events import ToolCompleted, ToolStarted
from src.cortex.session import CortexChatSession, to_turns
from src.cortex.store import CortexChatStore, StorageError
from src.llm.client import CompletionError, CortexAgent
from src.llm.models import MODEL_MAP
from src.runtime_config import RuntimeConfig
from src.tools.base import ToolResult
from src.tools.registry import ToolRegistry

# -- Helpers -------------------------------------------------------------------


class _FakeAgent:
    """Stands in for CortexAgent; records how it was built and called."""

    instances: list[_FakeAgent] = []
    reply: Any = "cortex reply"

    def __init__(self, model, preamble, tools, *, max_turns=50, **kwargs) -> None:
        self.model = model
        self.preamble = preamble
        self.tools = tools
        self.max_turns = max_turns
        self.kwargs = kwargs
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        _FakeAgent.instances.append(self)

    async def prompt(self, text, history=None, on_event=None) -> str:
        self.calls.append((text, list(history or [])))
        reply = _FakeAgent.reply
        if callable(reply):
            return await reply(text, on_event)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def fake_agent():
    _FakeAgent.instances = []
    _FakeAgent.reply = "cortex reply"
    with patch("src.cortex.session.CortexAgent", _FakeAgent):
        yield _FakeAgent


@pytest.fixture
def session(runtime_config: RuntimeConfig, store: CortexChatStore) -> CortexChatSession:
    history = AsyncMock()
    history.load_channel_timeline.return_value = []
    return CortexChatSession(runtime_config, ToolRegistry(), store, history)


# -- Success path --------------------------------------------------------------


async def test_send_message_returns_and_persists(
    session: CortexChatSession, store: CortexChatStore
) -> None:
    result = await session.send_message("t1", "hello cortex")

    assert result == "cortex reply"
    messages = await store.load_history("t1", 10)
    assert [(m.role, m.content) for m in messages] == [
        ("user", "hello cortex"),
        ("assistant", "cortex reply"),
    ]


async def test_channel_context_saved_on_both_turns(
    session: CortexChatSession, store: CortexChatStore
) -> None:
    await session.send_message("t1", "what's up in #ops?", channel_context_id="ops")

    messages = await store.load_history("t1", 10)
    assert [m.channel_context for m in messages] == ["ops", "ops"]
    session.history.load_channel_timeline.assert_awaited_once_with("ops", 50)


async def test_agent_configuration(session: CortexChatSession, fake_agent) -> None:
    await session.send_message("t1", "hi")

    [agent] = fake_agent.instances
    assert agent.model == MODEL_MAP["sonnet"]
    assert agent.max_turns == 50
    assert agent.tools is session.tools
    assert "You are the cortex" in agent.preamble


async def test_agent_gets_limits_and_key_from_settings(
    config_dir, store: CortexChatStore, fake_agent
) -> None:
    rc = RuntimeConfig(
        Settings(
            config_dir=config_dir,
            anthropic_api_key="sk-runtime",
            max_tokens=321,
            tool_result_preview_chars=12,
        )
    )
    session = CortexChatSession(rc, ToolRegistry(), store, AsyncMock())

    await session.send_message("t1", "hi")

    assert fake_agent.instances[0].kwargs == {
        "max_tokens": 321,
        "preview_chars": 12,
        "api_key": "sk-runtime",
    }


async def test_model_follows_branch_routing(
    tmp_path, config_dir, store: CortexChatStore, fake_agent
) -> None:
    rc = RuntimeConfig(Settings(config_dir=config_dir, branch_model="opus", cortex_model="haiku"))
    session = CortexChatSession(rc, ToolRegistry(), store, AsyncMock())

    await session.send_message("t1", "hi")

    assert fake_agent.instances[0].model == MODEL_MAP["opus"]


async def test_agent_is_rebuilt_per_request(session: CortexChatSession, fake_agent) -> None:
    await session.send_message("t1", "one")
    await session.send_message("t1", "two")
    assert len(fake_agent.instances) == 2
    assert fake_agent.instances[0] is not fake_agent.instances[1]


# -- History -------------------------------------------------------------------


async def test_history_excludes_inbound_turn(
    session: CortexChatSession, store: CortexChatStore, fake_agent
) -> None:
    await store.save_message("t1", "user", "earlier question")

    await session.send_message("t1", "new question")

    text, history = fake_agent.instances[0].calls[0]
    assert text == "new question"
    assert history == [{"role": "user", "content": "earlier question"}]


async def test_history_on_fresh_thread_is_empty(session: CortexChatSession, fake_agent) -> None:
    await session.send_message("brand-new", "first words")
    _, history = fake_agent.instances[0].calls[0]
    assert history == []


async def test_history_drops_unknown_roles(
    session: CortexChatSession, store: CortexChatStore, fake_agent
) -> None:
    await store.save_message("t1", "user", "q1")
    await store.save_message("t1", "system", "internal note")
    await store.save_message("t1", "assistant", "a1")

    await session.send_message("t1", "q2")

    _, history = fake_agent.instances[0].calls[0]
    assert history == [
        {"role": "user", "content": "q1"},
        {"role": "assistant", "content": "a1"},
    ]


def test_to_turns_skips_other_roles() -> None:
    messages = [
        MagicMock(role="user", content="a"),
        MagicMock(role="tool", content="b"),
        MagicMock(role="assistant", content="c"),
    ]
    assert to_turns(messages) == [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "c"},
    ]


# -- Failures ------------------------------------------------------------------


async def test_completion_failure_is_persisted_and_raised(
    session: CortexChatSession, store: CortexChatStore, fake_agent
) -> None:
    fake_agent.reply = CompletionError("rate limited")

    with pytest.raises(CompletionError) as exc_info:
        await session.send_message("t1", "hello")

    assert str(exc_info.value) == "Cortex chat error: rate limited"
    messages = await store.load_history("t1", 10)
    assert messages[-1].role == "assistant"
    assert messages[-1].content == "Cortex chat error: rate limited"


async def test_failed_turn_is_visible_to_next_request(
    session: CortexChatSession, fake_agent
) -> None:
    fake_agent.reply = CompletionError("overloaded")
    with pytest.raises(CompletionError):
        await session.send_message("t1", "first")

    fake_agent.reply = "recovered"
    assert await session.send_message("t1", "second") == "recovered"

    _, history = fake_agent.instances[1].calls[0]
    assert history == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "Cortex chat error: overloaded"},
    ]


async def test_storage_failure_before_model_call(
    runtime_config: RuntimeConfig, fake_agent
) -> None:
    store = AsyncMock()
    store.save_message.side_effect = StorageError("disk gone")
    session = CortexChatSession(runtime_config, ToolRegistry(), store, AsyncMock())

    with pytest.raises(StorageError):
        await session.send_message("t1", "hello")

    assert fake_agent.instances == []
    assert not session.busy


async def test_lock_released_after_failure(session: CortexChatSession, fake_agent) -> None:
    fake_agent.reply = CompletionError("boom")
    with pytest.raises(CompletionError):
        await session.send_message("t1", "hello")
    assert not session.busy


async def test_tool_loop_crash_is_persisted_and_raised(
    runtime_config: RuntimeConfig, store: CortexChatStore
) -> None:
    tools = ToolRegistry()

    @tools.tool(name="clock", description="Current time", category="test")
    async def clock() -> ToolResult:
        return ToolResult(data={"at": datetime.now(UTC)})

    tool_call = MagicMock()
    tool_call.content = [
        MagicMock(type="tool_use", id="tu1", input={}),
    ]
    tool_call.content[0].name = "clock"
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=tool_call)
    session = CortexChatSession(runtime_config, tools, store, AsyncMock())

    with (
        patch("src.cortex.session.CortexAgent", CortexAgent),
        patch("src.llm.client._get_client", return_value=client),
        pytest.raises(CompletionError, match="TypeError"),
    ):
        await session.send_message("t1", "what time is it?")

    messages = await store.load_history("t1", 10)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[-1].content.startswith("Cortex chat error: TypeError")
    assert not session.busy


async def test_timeout_becomes_completion_error(
    config_dir, store: CortexChatStore, fake_agent
) -> None:
    rc = RuntimeConfig(Settings(config_dir=config_dir, cortex_request_timeout_seconds=0.05))
    session = CortexChatSession(rc, ToolRegistry(), store, AsyncMock())

    async def _stall(text, on_event):
        await asyncio.sleep(10)

    fake_agent.reply = _stall

    with pytest.raises(CompletionError, match="timed out"):
        await session.send_message("t1", "hello")

    messages = await store.load_history("t1", 10)
    assert messages[-1].content.startswith("Cortex chat error: timed out")


# -- Events --------------------------------------------------------------------


async def test_events_forwarded(session: CortexChatSession, fake_agent) -> None:
    async def _with_tools(text, on_event):
        await on_event(ToolStarted(tool="read_channel_history"))
        await on_event(ToolCompleted(tool="read_channel_history", result_preview="{}"))
        return "done"

    fake_agent.reply = _with_tools
    events = []

    async def on_event(event) -> None:
        events.append(event)

    await session.send_message("t1", "hi", on_event=on_event)

    assert [e.type for e in events] == ["tool_started", "tool_completed"]


# -- Serialization -------------------------------------------------------------


async def test_concurrent_sends_do_not_interleave(
    runtime_config: RuntimeConfig, store: CortexChatStore, fake_agent
) -> None:
    writes: list[tuple[str, str]] = []
    original_save = store.save_message

    async def _recording_save(thread_id, role, content, channel_context=None):
        writes.append((role, content))
        return await original_save(thread_id, role, content, channel_context)

    store.save_message = _recording_save  # type: ignore[method-assign]
    session = CortexChatSession(runtime_config, ToolRegistry(), store, AsyncMock())

    first_started = asyncio.Event()
    release_first = asyncio.Event()

    async def _reply(text, on_event):
        if text == "A":
            first_started.set()
            await release_first.wait()
        return f"reply {text}"

    fake_agent.reply = _reply

    task_a = asyncio.create_task(session.send_message("t1", "A"))
    await first_started.wait()
    task_b = asyncio.create_task(session.send_message("t1", "B"))
    await asyncio.sleep(0.05)

    # B is queued on the lock and has not written anything yet.
    assert writes == [("user", "A")]
    assert session.busy

    release_first.set()
    assert await task_a == "reply A"
    assert await task_b == "reply B"

    assert writes == [
        ("user", "A"),
        ("assistant", "reply A"),
        ("user", "B"),
        ("assistant", "reply B"),
    ]
