"""Tests for the simulated thread store."""

from __future__ import annotations

import random

import pytest

from chatshell.chat.models import estimate_tokens
from chatshell.chat.responses import FALLBACK_RESPONSE, synthesize_response
from chatshell.chat.seed import sample_threads, seed_store
from chatshell.chat.thread_store import (
    DEFAULT_DELAYS,
    BackendFault,
    LatencyProfile,
    ThreadNotFoundError,
    ThreadStore,
)
from chatshell.ui.events import ChatActivated, EventBus


@pytest.mark.asyncio
async def test_create_thread_is_temporary_and_unlisted(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread()

    assert thread.is_temporary
    assert thread.title.startswith("New Chat ")
    assert await thread_store.list_threads() == []
    assert (await thread_store.get_by_id(thread.id)) == thread


@pytest.mark.asyncio
async def test_first_message_activates_thread_once(thread_store: ThreadStore, bus: EventBus) -> None:
    activated: list[ChatActivated] = []
    bus.subscribe(ChatActivated, activated.append)
    thread = await thread_store.create_thread("Draft")

    await thread_store.add_message(thread.id, "user", "hello")
    await thread_store.add_message(thread.id, "user", "again")

    assert [event.chat_id for event in activated] == [thread.id]
    listed = await thread_store.list_threads()
    assert [item.id for item in listed] == [thread.id]
    assert not listed[0].is_temporary


@pytest.mark.asyncio
async def test_aggregates_follow_retained_messages(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Sizes")
    first = await thread_store.add_message(thread.id, "user", "abcd")
    await thread_store.add_message(thread.id, "assistant", "abcde")

    stored = await thread_store.get_by_id(thread.id)
    assert stored is not None
    assert stored.size_chars == 9
    assert stored.size_tokens == estimate_tokens("abcd") + estimate_tokens("abcde") == 3

    await thread_store.trim_messages_from(thread.id, first.id)
    trimmed = await thread_store.get_by_id(thread.id)
    assert trimmed is not None
    assert trimmed.size_chars == 4
    assert trimmed.size_tokens == 1
    assert trimmed.last_msg_at == first.created_at


@pytest.mark.asyncio
async def test_list_threads_orders_by_latest_message(thread_store: ThreadStore) -> None:
    older = await thread_store.create_thread("Older")
    await thread_store.add_message(older.id, "user", "one")
    newer = await thread_store.create_thread("Newer")
    await thread_store.add_message(newer.id, "user", "two")
    assert [t.id for t in await thread_store.list_threads()] == [newer.id, older.id]

    await thread_store.add_message(older.id, "user", "three")

    assert [t.id for t in await thread_store.list_threads()] == [older.id, newer.id]


@pytest.mark.asyncio
async def test_trim_from_assistant_keeps_owning_user_message(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Trim")
    await thread_store.add_message(thread.id, "user", "first question")
    await thread_store.generate_response(thread.id, "first question")
    await thread_store.add_message(thread.id, "user", "second question")
    last_reply = await thread_store.generate_response(thread.id, "second question")

    kept = await thread_store.trim_messages_from(thread.id, last_reply.id)

    assert kept == "second question"
    messages = await thread_store.list_messages(thread.id)
    assert [m.role for m in messages] == ["user", "assistant", "user"]
    assert messages[-1].content == "second question"


@pytest.mark.asyncio
async def test_trim_from_user_message_keeps_it_as_last(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Trim user")
    u1 = await thread_store.add_message(thread.id, "user", "U1")
    a1 = await thread_store.add_message(thread.id, "assistant", "A1")
    u2 = await thread_store.add_message(thread.id, "user", "U2")
    await thread_store.add_message(thread.id, "assistant", "A2")

    kept = await thread_store.trim_messages_from(thread.id, u2.id)

    assert kept == "U2"
    messages = await thread_store.list_messages(thread.id)
    assert [m.id for m in messages] == [u1.id, a1.id, u2.id]


@pytest.mark.asyncio
async def test_trim_returns_none_without_preceding_user_message(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Assistant first")
    greeting = await thread_store.add_message(thread.id, "assistant", "Hi there")

    assert await thread_store.trim_messages_from(thread.id, greeting.id) is None
    assert await thread_store.trim_messages_from(thread.id, "missing") is None
    assert await thread_store.trim_messages_from("missing", greeting.id) is None
    assert len(await thread_store.list_messages(thread.id)) == 1


@pytest.mark.asyncio
async def test_delete_is_soft_and_drops_messages(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Doomed")
    await thread_store.add_message(thread.id, "user", "bye")

    assert await thread_store.delete_thread(thread.id) is True
    assert await thread_store.delete_thread(thread.id) is False
    assert await thread_store.list_threads() == []
    assert await thread_store.get_by_id(thread.id) is None
    assert await thread_store.list_messages(thread.id) == []
    assert await thread_store.update_title(thread.id, "Renamed") is None

    stats = await thread_store.get_thread_stats(thread.id)
    assert stats is not None
    assert stats.message_count == 0

    with pytest.raises(ThreadNotFoundError) as excinfo:
        await thread_store.add_message(thread.id, "user", "hello?")
    assert excinfo.value.thread_id == thread.id


@pytest.mark.asyncio
async def test_generate_response_is_deterministic(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Replies")
    await thread_store.add_message(thread.id, "user", "How do I index a SQL table?")

    reply = await thread_store.generate_response(thread.id, "How do I index a SQL table?")

    assert reply.role == "assistant"
    assert reply.model_name == "gpt-4-turbo"
    assert reply.content == synthesize_response("how do i index a sql table?")
    assert synthesize_response("tell me a joke") == FALLBACK_RESPONSE


@pytest.mark.asyncio
async def test_attachment_is_normalised(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Files")

    message = await thread_store.add_message(
        thread.id, "user", "see file", [{"name": "report.pdf", "size": "2048"}, "ignored.txt"]
    )

    assert message.attachment is not None
    assert message.attachment.name == "report.pdf"
    assert message.attachment.size == 2048
    assert message.to_dict()["attachment"]["extension"] == "pdf"


@pytest.mark.asyncio
async def test_update_message_like_clamps(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Likes")
    message = await thread_store.add_message(thread.id, "user", "rate me")

    assert await thread_store.update_message_like(message.id, 5) is True
    assert await thread_store.update_message_like("missing", 1) is False

    stored = await thread_store.list_messages(thread.id)
    assert stored[0].like == 1


@pytest.mark.asyncio
async def test_search_is_case_insensitive(thread_store: ThreadStore) -> None:
    first = await thread_store.create_thread("One")
    await thread_store.add_message(first.id, "user", "Promise chains")
    second = await thread_store.create_thread("Two")
    await thread_store.add_message(second.id, "user", "nothing relevant")

    hits = await thread_store.search_messages("PROMISE")

    assert [hit.thread_id for hit in hits] == [first.id]
    assert hits[0].messages[0].content == "Promise chains"


@pytest.mark.asyncio
async def test_records_are_copies(thread_store: ThreadStore) -> None:
    thread = await thread_store.create_thread("Original")
    thread.title = "Mutated locally"

    stored = await thread_store.get_by_id(thread.id)

    assert stored is not None
    assert stored.title == "Original"


@pytest.mark.asyncio
async def test_fault_rate_raises_backend_fault(bus: EventBus) -> None:
    store = ThreadStore(latency=LatencyProfile(scale=0.0), event_bus=bus, fault_rate=1.0)

    with pytest.raises(BackendFault):
        await store.list_threads()


@pytest.mark.asyncio
async def test_seed_lists_threads_without_activation(thread_store: ThreadStore, bus: EventBus) -> None:
    activated: list[ChatActivated] = []
    bus.subscribe(ChatActivated, activated.append)

    ids = seed_store(thread_store)

    assert activated == []
    assert len(ids) == len(sample_threads()) == 4
    listed = await thread_store.list_threads()
    titles = [thread.title for thread in listed]
    assert titles[0] == "React Components Design"
    assert titles[-1] == "Empty Chat"
    empty = listed[-1]
    assert await thread_store.list_messages(empty.id) == []


def test_latency_profile_scales_and_jitters() -> None:
    rng = random.Random(5)

    assert LatencyProfile(scale=0.0).delay_for("generate_response", rng) == 0.0
    assert LatencyProfile(scale=2.0).delay_for("get_by_id", rng) == pytest.approx(0.1)

    jittered = LatencyProfile(scale=1.0, jitter=0.5).delay_for("generate_response", rng)
    base = DEFAULT_DELAYS["generate_response"]
    assert base * 0.5 <= jittered <= base * 1.5
