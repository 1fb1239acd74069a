import asyncio

import pytest

from conftest import FakeAIClient, text_response, tool_response
from starbase.ai.conversation import is_alternating
from starbase.ai.orchestrator import TurnRequest
from starbase.config import AgentConfig
from starbase.core.types import Channel, ModelTier
from starbase.errors import ConversationNotFound, ProviderError, ValidationError
from starbase.storage.models import Observation


@pytest.mark.asyncio
async def test_simple_turn_creates_conversation_and_two_messages(make_orchestrator, repo):
    client = FakeAIClient([text_response("You have two tasks due.", 120, 30)])
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="What's on my plate today?"))

    assert result.text == "You have two tasks due."
    assert result.tier == ModelTier.FAST
    assert result.tool_rounds == 0
    assert result.degraded is False
    assert len(client.calls) == 1
    assert client.calls[0]["model"] == "claude-haiku-4-5-20251001"

    conversation = await repo.get_conversation(result.conversation_id)
    assert conversation.channel == "web"
    assert conversation.user_id == "u1"

    messages = await repo.first_messages(result.conversation_id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[0].content == "What's on my plate today?"
    assert messages[1].tokens_used == 150
    assert messages[1].model == "fast"
    assert messages[1].tool_calls is None


@pytest.mark.asyncio
async def test_smart_message_uses_capable_model(make_orchestrator):
    client = FakeAIClient([text_response("Here is the breakdown.")])
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(
        TurnRequest(user_id="u1", message="Give me a budget summary and recommend changes")
    )

    assert result.tier == ModelTier.SMART
    assert client.calls[0]["model"] == "claude-sonnet-4-6-20250514"


@pytest.mark.asyncio
async def test_two_tool_rounds_sum_tokens_and_record_actions(make_orchestrator, repo, echo_tool):
    client = FakeAIClient(
        [
            tool_response(("echo", {"value": "x"}), input_tokens=100, output_tokens=20),
            tool_response(("lookup", {"value": "y"}), input_tokens=150, output_tokens=30),
            text_response("All done.", input_tokens=200, output_tokens=40),
        ]
    )
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="echo things"))

    assert result.tool_rounds == 2
    assert result.input_tokens == 450
    assert result.output_tokens == 90
    assert result.cost_cents == pytest.approx(0.072)
    assert result.tool_names == ["echo", "lookup"]
    assert echo_tool.calls == [("x", "u1")]

    actions = await repo.list_actions(result.conversation_id)
    assert [a.action_type for a in actions] == ["echo", "lookup"]
    assert actions[0].summary == 'echo({"value": "x"})'
    assert all(a.user_id == "u1" and a.channel == "web" for a in actions)

    messages = await repo.first_messages(result.conversation_id)
    assistant = messages[-1]
    assert assistant.tokens_used == 540
    assert assistant.cost_cents == pytest.approx(0.072)
    assert [c["name"] for c in assistant.tool_calls] == ["echo", "lookup"]


@pytest.mark.asyncio
async def test_later_rounds_keep_earlier_tool_exchanges(make_orchestrator):
    client = FakeAIClient(
        [
            tool_response(("echo", {"value": "a"})),
            tool_response(("echo", {"value": "b"})),
            text_response("ok"),
        ]
    )
    orchestrator = make_orchestrator(client)

    await orchestrator.run_turn(TurnRequest(user_id="u1", message="go"))

    third_call = client.calls[2]["messages"]
    assert len(third_call) == 5
    assert is_alternating(third_call)
    tool_results = [
        block for m in third_call if isinstance(m["content"], list) for block in m["content"]
        if block.get("type") == "tool_result"
    ]
    assert len(tool_results) == 2


@pytest.mark.asyncio
async def test_tool_failure_does_not_fail_turn(make_orchestrator, repo):
    client = FakeAIClient(
        [
            tool_response(("explode", {})),
            text_response("Sorry, that didn't work."),
        ]
    )
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="try it"))

    assert result.text == "Sorry, that didn't work."
    assert result.tool_calls[0]["success"] is False
    result_block = client.calls[1]["messages"][-1]["content"][0]
    assert result_block["type"] == "tool_result"
    assert result_block["is_error"] is True
    assert "database connection lost" in result_block["content"]

    actions = await repo.list_actions(result.conversation_id)
    assert len(actions) == 1


@pytest.mark.asyncio
async def test_one_result_per_tool_call_in_a_round(make_orchestrator, repo):
    first = tool_response(("echo", {"value": "1"}), ("unknown_tool", {}), ("lookup", {"value": "2"}))
    client = FakeAIClient([first, text_response("done")])
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="several"))

    results = client.calls[1]["messages"][-1]["content"]
    ids = [b["id"] for b in first.tool_uses]
    assert [r["tool_use_id"] for r in results] == ids
    assert "Unknown tool" in results[1]["content"]
    assert len(await repo.list_actions(result.conversation_id)) == 3
    assert result.tool_rounds == 1


@pytest.mark.asyncio
async def test_round_limit_returns_fallback_text(make_orchestrator, agent_config):
    client = FakeAIClient(default=tool_response(("echo", {})))
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="loop forever"))

    assert result.tool_rounds == agent_config.max_tool_rounds == 10
    assert len(client.calls) == 11
    assert result.text == "Done."
    assert result.degraded is True


@pytest.mark.asyncio
async def test_round_limit_keeps_available_text(make_orchestrator):
    client = FakeAIClient(default=tool_response(("echo", {}), text="Still working on it"))
    orchestrator = make_orchestrator(client, AgentConfig(max_tool_rounds=3))

    result = await orchestrator.run_turn(TurnRequest(user_id="u1", message="loop"))

    assert result.tool_rounds == 3
    assert result.text == "Still working on it"
    assert result.degraded is True


@pytest.mark.asyncio
async def test_provider_failure_leaves_no_assistant_message(make_orchestrator, repo):
    client = FakeAIClient([RuntimeError("connection reset")])
    orchestrator = make_orchestrator(client)

    with pytest.raises(ProviderError):
        await orchestrator.run_turn(TurnRequest(user_id="u1", message="hello"))

    conversations = await repo.list_conversations("u1")
    assert len(conversations) == 1
    messages = await repo.first_messages(conversations[0].id)
    assert [m.role for m in messages] == ["user"]


@pytest.mark.asyncio
async def test_provider_failure_mid_loop_keeps_actions(make_orchestrator, repo):
    client = FakeAIClient([tool_response(("echo", {})), ProviderError("overloaded")])
    orchestrator = make_orchestrator(client)

    with pytest.raises(ProviderError):
        await orchestrator.run_turn(TurnRequest(user_id="u1", message="hello"))

    conversation = (await repo.list_conversations("u1"))[0]
    assert len(await repo.list_actions(conversation.id)) == 1
    messages = await repo.first_messages(conversation.id)
    assert all(m.role == "user" for m in messages)


@pytest.mark.asyncio
async def test_empty_message_rejected(make_orchestrator, repo):
    orchestrator = make_orchestrator(FakeAIClient())

    with pytest.raises(ValidationError):
        await orchestrator.run_turn(TurnRequest(user_id="u1", message="   "))

    assert await repo.list_conversations("u1") == []


@pytest.mark.asyncio
async def test_foreign_conversation_rejected(make_orchestrator):
    client = FakeAIClient([text_response("hi")])
    orchestrator = make_orchestrator(client)
    result = await orchestrator.run_turn(TurnRequest(user_id="owner", message="hello"))

    with pytest.raises(ConversationNotFound):
        await orchestrator.run_turn(
            TurnRequest(user_id="intruder", message="hello", conversation_id=result.conversation_id)
        )
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_continuing_conversation_sends_alternating_history(make_orchestrator):
    client = FakeAIClient(default=text_response("sure"))
    orchestrator = make_orchestrator(client)

    first = await orchestrator.run_turn(TurnRequest(user_id="u1", message="one"))
    for text in ("two", "three"):
        await orchestrator.run_turn(
            TurnRequest(user_id="u1", message=text, conversation_id=first.conversation_id)
        )

    last = client.calls[-1]["messages"]
    assert [m["role"] for m in last] == ["user", "assistant", "user", "assistant", "user"]
    assert last[-1]["content"] == "three"


@pytest.mark.asyncio
async def test_discord_channel_gets_its_prompt(make_orchestrator, repo):
    client = FakeAIClient([text_response("ok")])
    orchestrator = make_orchestrator(client)

    result = await orchestrator.run_turn(
        TurnRequest(user_id="u1", message="hi", channel=Channel.DISCORD, channel_ref="chan-9")
    )

    conversation = await repo.get_conversation(result.conversation_id)
    assert conversation.channel == "discord"
    assert conversation.channel_ref == "chan-9"
    assert "Discord" in client.calls[0]["system"]


@pytest.mark.asyncio
async def test_observations_injected_into_system_prompt(make_orchestrator, observation_repo):
    await observation_repo.add(Observation(user_id="u1", content="Prefers metric units"))
    client = FakeAIClient([text_response("ok")])
    orchestrator = make_orchestrator(client)

    await orchestrator.run_turn(TurnRequest(user_id="u1", message="hi"))

    assert "<user_context>" in client.calls[0]["system"]
    assert "Prefers metric units" in client.calls[0]["system"]


@pytest.mark.asyncio
async def test_long_conversation_is_summarized(make_orchestrator, session_manager, summarizer, repo):
    conversation_id = await session_manager.resolve_or_create(None, "u1", Channel.WEB)
    for i in range(30):
        await session_manager.append_message(conversation_id, "user", f"question {i}")
        await session_manager.append_message(conversation_id, "assistant", f"answer {i}")

    client = FakeAIClient([text_response("ok")])
    orchestrator = make_orchestrator(client)
    await orchestrator.run_turn(
        TurnRequest(user_id="u1", message="latest", conversation_id=conversation_id)
    )

    assert len(summarizer.calls) == 1
    system = client.calls[0]["system"]
    assert "<conversation_history_summary>" in system
    messages = client.calls[0]["messages"]
    assert messages[0]["role"] == "user"
    assert messages[-1]["content"] == "latest"
    assert len(messages) <= 41
    assert is_alternating(messages)

    conversation = await repo.get_conversation(conversation_id)
    assert conversation.summary == "summary"
    assert conversation.summarized_through > 0


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_conversation_are_serialized(make_orchestrator, repo):
    client = FakeAIClient(default=text_response("ok"))
    orchestrator = make_orchestrator(client)
    first = await orchestrator.run_turn(TurnRequest(user_id="u1", message="start"))

    await asyncio.gather(
        *(
            orchestrator.run_turn(
                TurnRequest(user_id="u1", message=f"m{i}", conversation_id=first.conversation_id)
            )
            for i in range(4)
        )
    )

    messages = await repo.first_messages(first.conversation_id)
    assert [m.role for m in messages] == ["user", "assistant"] * 5


@pytest.mark.asyncio
async def test_turn_locks_released_after_turns(make_orchestrator, session_manager):
    client = FakeAIClient(default=text_response("ok"))
    orchestrator = make_orchestrator(client)

    for i in range(25):
        await orchestrator.run_turn(TurnRequest(user_id="u1", message=f"new chat {i}"))
    first = await orchestrator.run_turn(TurnRequest(user_id="u1", message="start"))
    await asyncio.gather(
        *(
            orchestrator.run_turn(
                TurnRequest(user_id="u1", message=f"m{i}", conversation_id=first.conversation_id)
            )
            for i in range(3)
        )
    )

    assert session_manager._locks == {}


@pytest.mark.asyncio
async def test_backlog_beyond_history_cap_is_fully_summarized(
    make_orchestrator, session_manager, summarizer, repo
):
    conversation_id = await session_manager.resolve_or_create(None, "u1", Channel.WEB)
    for i in range(125):
        await session_manager.append_message(conversation_id, "user", f"question {i}")
        await session_manager.append_message(conversation_id, "assistant", f"answer {i}")
    stored = await repo.messages_after(conversation_id)

    client = FakeAIClient([text_response("ok")])
    await make_orchestrator(client).run_turn(
        TurnRequest(user_id="u1", message="latest", conversation_id=conversation_id)
    )

    summarized = [m for _, batch in summarizer.calls for m in batch]
    assert summarized[0].id == stored[0].id
    conversation = await repo.get_conversation(conversation_id)
    assert conversation.summarized_through == summarized[-1].id
    sent = client.calls[0]["messages"]
    # nothing is both summarized and sent, and nothing falls in between
    assert len(summarized) + len(sent) == len(stored) + 1


@pytest.mark.asyncio
async def test_failed_summary_of_backlog_keeps_watermark(
    make_orchestrator, session_manager, summarizer, repo
):
    summarizer.fail = True
    conversation_id = await session_manager.resolve_or_create(None, "u1", Channel.WEB)
    for i in range(120):
        await session_manager.append_message(conversation_id, "user", f"question {i}")
        await session_manager.append_message(conversation_id, "assistant", f"answer {i}")

    client = FakeAIClient([text_response("ok")])
    await make_orchestrator(client).run_turn(
        TurnRequest(user_id="u1", message="latest", conversation_id=conversation_id)
    )

    conversation = await repo.get_conversation(conversation_id)
    assert conversation.summarized_through == 0
    assert conversation.summary is None
    sent = client.calls[0]["messages"]
    assert len(sent) <= 40
    assert sent[-1]["content"] == "latest"
