"""
Tests for the agent loop.
"""

import pytest
from pydantic import BaseModel

from relay_agent.agent import MAX_STEPS_MESSAGE, AgentLoop, TurnDispatcher, to_turn_log
from relay_agent.memory import ConversationStore
from relay_agent.models import Message, MessageRole
from relay_agent.tools import NoInput, Tool, ToolRegistry, ToolResult

from conftest import RecordingChannel, ScriptedLLM, text_response, tool_response


class EchoInput(BaseModel):
    text: str


def _history(*texts: str) -> list[Message]:
    return [Message(role=MessageRole.USER, content=t) for t in texts]


def _registry(executed: list[str] | None = None) -> ToolRegistry:
    async def echo(params: EchoInput, context) -> ToolResult:
        if executed is not None:
            executed.append(params.text)
        return ToolResult(content=f"echo: {params.text}")

    async def explode(params, context) -> ToolResult:
        raise RuntimeError("kaboom")

    async def snap(params, context) -> ToolResult:
        return ToolResult(content=[{"type": "text", "text": "captured"}], attachment=b"PNGDATA")

    return ToolRegistry([
        Tool(name="echo", description="Echo text back", input_model=EchoInput, handler=echo),
        Tool(name="explode", description="Always fails", input_model=NoInput, handler=explode),
        Tool(name="snap", description="Produces an image", input_model=NoInput, handler=snap),
    ])


def test_to_turn_log_converts_messages():
    history = [
        Message(role=MessageRole.USER, content="Hi"),
        Message(role=MessageRole.ASSISTANT, content="Hello"),
    ]

    assert to_turn_log(history) == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ]


def test_to_turn_log_drops_leading_assistant_messages():
    history = [
        Message(role=MessageRole.ASSISTANT, content="orphaned reply"),
        Message(role=MessageRole.USER, content="Hi"),
        Message(role=MessageRole.ASSISTANT, content="Hello"),
    ]

    turn_log = to_turn_log(history)

    assert turn_log[0] == {"role": "user", "content": "Hi"}
    assert len(turn_log) == 2


def test_to_turn_log_skips_blank_messages():
    history = [
        Message(role=MessageRole.USER, content="take a screenshot"),
        Message(role=MessageRole.ASSISTANT, content=""),
        Message(role=MessageRole.USER, content="   "),
        Message(role=MessageRole.USER, content="thanks"),
    ]

    assert to_turn_log(history) == [
        {"role": "user", "content": "take a screenshot"},
        {"role": "user", "content": "thanks"},
    ]


@pytest.mark.asyncio
async def test_empty_reply_does_not_poison_next_turn():
    """An empty stored reply is never sent back to the model."""

    llm = ScriptedLLM(text_response(""), text_response("second answer"))
    store = ConversationStore()
    channel = RecordingChannel()
    dispatcher = TurnDispatcher(store=store, agent=AgentLoop(llm=llm, tool_registry=ToolRegistry()), channel=channel)

    await dispatcher.handle("42", "first")
    await dispatcher.handle("42", "again")

    assert [m.content for m in store.history("42")] == ["first", "", "again", "second answer"]
    assert llm.calls[1]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "user", "content": "again"},
    ]
    assert channel.sent == [("text", "42", "second answer")]


def test_invalid_iteration_cap():
    with pytest.raises(ValueError):
        AgentLoop(llm=ScriptedLLM(text_response("x")), tool_registry=ToolRegistry(), max_tool_iterations=0)


@pytest.mark.asyncio
async def test_direct_answer_makes_one_call():
    llm = ScriptedLLM(text_response("Paris."))
    agent = AgentLoop(llm=llm, tool_registry=_registry(), system_prompt="be brief")

    reply = await agent.run(_history("Capital of France?"))

    assert reply.text == "Paris."
    assert reply.attachments == []
    assert reply.iterations == 1
    assert len(llm.calls) == 1
    assert llm.calls[0]["system_prompt"] == "be brief"
    assert [t.name for t in llm.calls[0]["tools"]] == ["echo", "explode", "snap"]


@pytest.mark.asyncio
async def test_tool_rounds_make_k_plus_one_calls():
    """Two rounds of tool use followed by an answer is three model calls."""
    executed: list[str] = []
    llm = ScriptedLLM(
        tool_response(("call_1", "echo", {"text": "first"})),
        tool_response(("call_2", "echo", {"text": "second"})),
        text_response("done"),
    )
    agent = AgentLoop(llm=llm, tool_registry=_registry(executed))

    reply = await agent.run(_history("go"))

    assert reply.text == "done"
    assert reply.iterations == 3
    assert len(llm.calls) == 3
    assert executed == ["first", "second"]

    final_log = llm.calls[2]["messages"]
    assert [m["role"] for m in final_log] == ["user", "assistant", "user", "assistant", "user"]
    assert final_log[1]["content"][0]["type"] == "tool_use"
    assert final_log[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "call_1", "content": "echo: first"},
    ]


@pytest.mark.asyncio
async def test_parallel_tool_calls_run_in_order_and_bundle_results():
    executed: list[str] = []
    llm = ScriptedLLM(
        tool_response(
            ("a", "echo", {"text": "one"}),
            ("b", "echo", {"text": "two"}),
            ("c", "echo", {"text": "three"}),
            text="Let me check.",
        ),
        text_response("all done"),
    )
    agent = AgentLoop(llm=llm, tool_registry=_registry(executed))

    await agent.run(_history("go"))

    assert executed == ["one", "two", "three"]
    results_turn = llm.calls[1]["messages"][-1]
    assert results_turn["role"] == "user"
    assert [block["tool_use_id"] for block in results_turn["content"]] == ["a", "b", "c"]
    assistant_turn = llm.calls[1]["messages"][-2]
    assert assistant_turn["content"][0] == {"type": "text", "text": "Let me check."}


@pytest.mark.asyncio
async def test_iteration_cap_returns_fixed_message():
    llm = ScriptedLLM(tool_response(("loop", "echo", {"text": "again"})))
    agent = AgentLoop(llm=llm, tool_registry=_registry(), max_tool_iterations=3)

    reply = await agent.run(_history("never stop"))

    assert reply.text == MAX_STEPS_MESSAGE
    assert reply.iterations == 3
    assert len(llm.calls) == 3


@pytest.mark.asyncio
async def test_failing_tool_becomes_error_result():
    llm = ScriptedLLM(
        tool_response(("x", "explode", {})),
        text_response("The tool failed, sorry."),
    )
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    reply = await agent.run(_history("try it"))

    assert reply.text == "The tool failed, sorry."
    block = llm.calls[1]["messages"][-1]["content"][0]
    assert block["tool_use_id"] == "x"
    assert block["is_error"] is True
    assert "kaboom" in block["content"]


@pytest.mark.asyncio
async def test_unknown_tool_and_bad_input_become_error_results():
    llm = ScriptedLLM(
        tool_response(("u", "does_not_exist", {}), ("v", "echo", {"wrong": 1})),
        text_response("ok"),
    )
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    await agent.run(_history("go"))

    unknown, invalid = llm.calls[1]["messages"][-1]["content"]
    assert unknown["content"] == "Unknown tool: does_not_exist"
    assert unknown["is_error"] is True
    assert invalid["content"].startswith("Invalid input for echo:")
    assert "text" in invalid["content"]


@pytest.mark.asyncio
async def test_attachments_are_collected():
    llm = ScriptedLLM(
        tool_response(("s1", "snap", {})),
        tool_response(("s2", "snap", {})),
        text_response("Here is your screen."),
    )
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    reply = await agent.run(_history("screenshot please"))

    assert reply.attachments == [b"PNGDATA", b"PNGDATA"]
    assert reply.text == "Here is your screen."


@pytest.mark.asyncio
async def test_tool_use_stop_without_calls_is_final():
    from relay_agent.llm import LLMResponse

    llm = ScriptedLLM(LLMResponse(content_blocks=[{"type": "text", "text": "hmm"}], stop_reason="tool_use"))
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    reply = await agent.run(_history("go"))

    assert reply.text == "hmm"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_model_errors_propagate():
    llm = ScriptedLLM(RuntimeError("endpoint down"))
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    with pytest.raises(RuntimeError, match="endpoint down"):
        await agent.run(_history("hello"))


@pytest.mark.asyncio
async def test_history_is_not_mutated():
    history = _history("go")
    llm = ScriptedLLM(tool_response(("a", "echo", {"text": "x"})), text_response("done"))
    agent = AgentLoop(llm=llm, tool_registry=_registry())

    await agent.run(history)

    assert history == _history("go")
