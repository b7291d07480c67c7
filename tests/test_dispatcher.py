"""
Tests for the turn dispatcher.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from relay_agent.agent import APOLOGY_MESSAGE, AgentLoop, AgentReply, TurnDispatcher
from relay_agent.memory import SUMMARY_MARKER, ConversationStore
from relay_agent.models import Message, MessageRole
from relay_agent.tools import ToolRegistry

from conftest import RecordingChannel, ScriptedLLM, text_response


class OverloadedError(Exception):
    status_code = 529


def _dispatcher(agent, store=None, channel=None, sleep=None):
    store = store or ConversationStore()
    channel = channel or RecordingChannel()
    dispatcher = TurnDispatcher(
        store=store,
        agent=agent,
        channel=channel,
        overload_cooldown_seconds=5.0,
        sleep=sleep or AsyncMock(),
    )
    return dispatcher, store, channel


def _stub_agent(*outcomes):
    agent = MagicMock()
    agent.run = AsyncMock(side_effect=list(outcomes))
    return agent


@pytest.mark.asyncio
async def test_happy_path_stores_and_sends_reply():
    agent = AgentLoop(llm=ScriptedLLM(text_response("Hi there!")), tool_registry=ToolRegistry())
    dispatcher, store, channel = _dispatcher(agent)

    await dispatcher.handle("42", "Hello")

    assert store.history("42") == [
        Message(role=MessageRole.USER, content="Hello"),
        Message(role=MessageRole.ASSISTANT, content="Hi there!"),
    ]
    assert channel.sent == [("text", "42", "Hi there!")]


@pytest.mark.asyncio
async def test_images_are_sent_before_text():
    agent = _stub_agent(AgentReply(text="Your screen", attachments=[b"img1", b"img2"]))
    dispatcher, _, channel = _dispatcher(agent)

    await dispatcher.handle("42", "screenshot")

    assert channel.sent == [
        ("image", "42", b"img1"),
        ("image", "42", b"img2"),
        ("text", "42", "Your screen"),
    ]


@pytest.mark.asyncio
async def test_empty_reply_text_is_stored_but_not_sent():
    agent = _stub_agent(AgentReply(text="", attachments=[b"img"]))
    dispatcher, store, channel = _dispatcher(agent)

    await dispatcher.handle("42", "screenshot")

    assert channel.sent == [("image", "42", b"img")]
    assert store.history("42")[-1] == Message(role=MessageRole.ASSISTANT, content="")


@pytest.mark.asyncio
async def test_overload_compacts_waits_and_retries_once():
    sleep = AsyncMock()
    agent = _stub_agent(OverloadedError("overloaded"), AgentReply(text="Recovered"))
    dispatcher, store, channel = _dispatcher(agent, sleep=sleep)

    with patch.object(store, "compact", wraps=store.compact) as compact:
        await dispatcher.handle("42", "Hello")

    assert compact.call_count == 1
    sleep.assert_awaited_once_with(5.0)
    assert agent.run.await_count == 2
    assert channel.sent == [("text", "42", "Recovered")]
    assert [m.content for m in store.history("42")] == ["Hello", "Recovered"]


@pytest.mark.asyncio
async def test_overload_detected_from_message_text():
    agent = _stub_agent(RuntimeError("Error code: 429 - rate_limit_error"), AgentReply(text="ok"))
    dispatcher, _, channel = _dispatcher(agent)

    await dispatcher.handle("42", "Hello")

    assert channel.sent == [("text", "42", "ok")]


@pytest.mark.asyncio
async def test_second_overload_ends_in_apology():
    agent = _stub_agent(OverloadedError("overloaded"), OverloadedError("still overloaded"))
    dispatcher, store, channel = _dispatcher(agent)

    await dispatcher.handle("42", "Hello")

    assert agent.run.await_count == 2
    assert channel.sent == [("text", "42", APOLOGY_MESSAGE)]
    assert [m.content for m in store.history("42")] == ["Hello"]


@pytest.mark.asyncio
async def test_other_errors_apologize_without_retry():
    sleep = AsyncMock()
    agent = _stub_agent(ValueError("bad request"))
    dispatcher, _, channel = _dispatcher(agent, sleep=sleep)

    await dispatcher.handle("42", "Hello")

    assert agent.run.await_count == 1
    sleep.assert_not_awaited()
    assert channel.sent == [("text", "42", APOLOGY_MESSAGE)]


@pytest.mark.asyncio
async def test_apology_delivery_failure_is_swallowed():
    agent = _stub_agent(ValueError("bad request"))
    dispatcher, _, _ = _dispatcher(agent, channel=RecordingChannel(fail_text=True))

    await dispatcher.handle("42", "Hello")


@pytest.mark.asyncio
async def test_delivery_failure_ends_in_apology_attempt():
    agent = _stub_agent(AgentReply(text="Hi"))
    channel = RecordingChannel(fail_text=True)
    dispatcher, store, _ = _dispatcher(agent, channel=channel)

    await dispatcher.handle("42", "Hello")

    assert [m.content for m in store.history("42")] == ["Hello", "Hi"]


@pytest.mark.asyncio
async def test_large_conversation_is_compacted_before_the_model_call():
    store = ConversationStore(max_messages=30, keep_recent=2, compact_threshold=100)
    for i in range(6):
        store.append("42", MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT, f"{i}" * 30)

    agent = _stub_agent(AgentReply(text="short"))
    dispatcher, _, _ = _dispatcher(agent, store=store)

    await dispatcher.handle("42", "new question")

    seen_history = agent.run.await_args.args[0]
    assert seen_history[0].content.startswith(SUMMARY_MARKER)
    assert seen_history[-1].content == "new question"
    assert len(seen_history) == 3


@pytest.mark.asyncio
async def test_turns_for_one_identity_are_serialized():
    active = {"now": 0, "peak": 0}

    async def slow_run(history, identity=None):
        active["now"] += 1
        active["peak"] = max(active["peak"], active["now"])
        await asyncio.sleep(0.01)
        active["now"] -= 1
        return AgentReply(text=f"re: {history[-1].content}")

    agent = MagicMock()
    agent.run = slow_run
    dispatcher, store, _ = _dispatcher(agent)

    await asyncio.gather(dispatcher.handle("42", "first"), dispatcher.handle("42", "second"))

    assert active["peak"] == 1
    assert [m.content for m in store.history("42")] == ["first", "re: first", "second", "re: second"]


@pytest.mark.asyncio
async def test_turns_for_different_identities_run_concurrently():
    active = {"now": 0, "peak": 0}

    async def slow_run(history, identity=None):
        active["now"] += 1
        active["peak"] = max(active["peak"], active["now"])
        await asyncio.sleep(0.01)
        active["now"] -= 1
        return AgentReply(text="ok")

    agent = MagicMock()
    agent.run = slow_run
    dispatcher, store, _ = _dispatcher(agent)

    await asyncio.gather(dispatcher.handle("a", "hi"), dispatcher.handle("b", "hi"))

    assert active["peak"] == 2
    assert store.message_count() == 4


class OverloadTextChannel(RecordingChannel):
    """Delivery fails with an error whose text looks like a rate limit."""

    async def send_text(self, identity: str, text: str) -> None:
        if text == APOLOGY_MESSAGE:
            await super().send_text(identity, text)
            return
        raise RuntimeError("429 rate_limit from the chat platform")


@pytest.mark.asyncio
async def test_delivery_error_is_not_treated_as_overload():
    sleep = AsyncMock()
    agent = _stub_agent(AgentReply(text="Hi"), AgentReply(text="Hi again"))
    dispatcher, store, channel = _dispatcher(agent, channel=OverloadTextChannel(), sleep=sleep)

    await dispatcher.handle("42", "Hello")

    assert agent.run.await_count == 1
    sleep.assert_not_awaited()
    assert [m.content for m in store.history("42")] == ["Hello", "Hi"]
    assert channel.sent == [("text", "42", APOLOGY_MESSAGE)]


@pytest.mark.asyncio
async def test_clear_waits_for_in_flight_turn():
    started = asyncio.Event()

    async def slow_run(history, identity=None):
        started.set()
        await asyncio.sleep(0.01)
        return AgentReply(text="late reply")

    agent = MagicMock()
    agent.run = slow_run
    dispatcher, store, _ = _dispatcher(agent)

    turn = asyncio.create_task(dispatcher.handle("42", "Hello"))
    await started.wait()
    await dispatcher.clear("42")
    await turn

    assert store.history("42") == []
