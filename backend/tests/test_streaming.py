from __future__ import annotations

import pytest

from branchchat.schemas import ChatRequest, FileAttachment
from branchchat.services import conversations as convo_service
from branchchat.services.streaming import AccumulatingRelay, StreamingCoordinator, derive_title

MODEL = "claude-sonnet-4-5"


async def run(request: ChatRequest) -> list:
    return [chunk async for chunk in StreamingCoordinator().handle_chat(request)]


async def events(*items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_relay_forwards_and_accumulates():
    relay = AccumulatingRelay(
        events({"message": {"content": "a"}}, {"message": {"content": ""}}, {"message": {"content": "b"}}, {"done": True})
    )

    forwarded = [piece async for piece in relay]

    assert forwarded == ["a", "b"]
    assert relay.text == "ab"
    assert relay.completed


def test_derive_title():
    assert derive_title("  short   question ") == "short question"
    assert derive_title("x" * 60) == "x" * 50 + "..."


@pytest.mark.asyncio
async def test_turn_is_streamed_and_persisted(db, scripted_model):
    conversation = await convo_service.create_conversation()
    scripted_model.reply("Hello", " there")

    chunks = await run(ChatRequest(message="Hi!", model=MODEL, conversation_id=conversation.id))

    assert [c.type for c in chunks] == ["user_message", "delta", "delta", "assistant_message", "conversation_title"]
    user = chunks[0].data["message"]
    assistant = chunks[3].data["message"]
    assert user["parent_message_id"] is None
    assert assistant["parent_message_id"] == user["id"]
    assert assistant["content"] == "Hello there"
    assert assistant["model"] == MODEL
    assert chunks[4].data["title"] == "Hi!"

    stored = await convo_service.get_messages(conversation.id)
    assert [(m.role, m.content) for m in stored] == [("user", "Hi!"), ("assistant", "Hello there")]
    assert scripted_model.last_messages == [{"role": "user", "content": "Hi!"}]


@pytest.mark.asyncio
async def test_upstream_error_leaves_no_assistant_row(db, scripted_model):
    conversation = await convo_service.create_conversation("Kept title")
    scripted_model.fail_midstream("par", error="Overloaded")

    chunks = await run(ChatRequest(message="Hi", model=MODEL, conversation_id=conversation.id))

    assert [c.type for c in chunks] == ["user_message", "delta", "error"]
    assert chunks[-1].data["error"] == "Overloaded"
    stored = await convo_service.get_messages(conversation.id)
    assert [m.role for m in stored] == ["user"]


@pytest.mark.asyncio
async def test_history_follows_parent_chain_and_system_prompt(db, scripted_model):
    conversation = await convo_service.create_conversation("Prompted", system_prompt="Answer in French.")
    u1 = await convo_service.create_message(conversation.id, None, "user", "Hi")
    a1 = await convo_service.create_message(conversation.id, u1.id, "assistant", "Salut")
    await convo_service.create_message(conversation.id, a1.id, "user", "Unrelated branch")
    scripted_model.reply("Bien")

    await run(
        ChatRequest(
            message="How are you?",
            model=MODEL,
            conversation_id=conversation.id,
            parent_message_id=a1.id,
            files=[FileAttachment(filename="x.zip", mime_type="application/zip", data="AAAA")],
        )
    )

    request = scripted_model.requests[-1]
    assert request["system"] == "Answer in French."
    assert request["messages"] == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Salut"},
        {"role": "user", "content": "How are you?"},
    ]


@pytest.mark.asyncio
async def test_thread_turn_is_flagged_and_isolated(db, scripted_model):
    conversation = await convo_service.create_conversation()
    u1 = await convo_service.create_message(conversation.id, None, "user", "Explain DNS")
    a1 = await convo_service.create_message(conversation.id, u1.id, "assistant", "DNS maps names")
    scripted_model.reply("An A record maps a name to IPv4")

    chunks = await run(
        ChatRequest(
            message="What is an A record?",
            model=MODEL,
            conversation_id=conversation.id,
            parent_message_id=a1.id,
            thread_context=True,
            thread_root_id=a1.id,
        )
    )

    assert scripted_model.last_messages == [
        {"role": "assistant", "content": "DNS maps names"},
        {"role": "user", "content": "What is an A record?"},
    ]
    user = chunks[0].data["message"]
    assistant = next(c for c in chunks if c.type == "assistant_message").data["message"]
    assert user["is_thread_message"] and assistant["is_thread_message"]
    assert "conversation_title" not in [c.type for c in chunks]


@pytest.mark.asyncio
async def test_missing_conversation_reports_error(db, scripted_model):
    chunks = await run(ChatRequest(message="Hi", model=MODEL, conversation_id=404))
    assert [c.type for c in chunks] == ["error"]
    assert scripted_model.requests == []


@pytest.mark.asyncio
async def test_relay_is_incomplete_without_done():
    relay = AccumulatingRelay(events({"message": {"content": "a"}}))

    assert [piece async for piece in relay] == ["a"]
    assert not relay.completed


@pytest.mark.asyncio
async def test_cut_off_stream_leaves_only_the_user_row(db, scripted_model):
    conversation = await convo_service.create_conversation()
    scripted_model.cut_off("half an ans")

    chunks = await run(ChatRequest(message="hi", model=MODEL, conversation_id=conversation.id))

    assert [c.type for c in chunks] == ["user_message", "delta", "error"]
    assert "message_stop" in chunks[-1].data["error"]
    stored = await convo_service.get_messages(conversation.id)
    assert [(m.role, m.content) for m in stored] == [("user", "hi")]
    assert (await convo_service.get_conversation(conversation.id)).title == "New Conversation"
