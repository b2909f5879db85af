import campus_bot.analytics as analytics
import campus_bot.storage as storage
from campus_bot.slots import ConversationContext


def test_load_context_reads_jsonb_state(asyncio_event_loop, fake_pool, monkeypatch):
    pool = fake_pool([({"current_intent": "find_person", "pending_field": "year", "collected": {"name": "Riya"}},)])
    monkeypatch.setattr(storage, "primary_pool", lambda: pool)

    ctx = asyncio_event_loop.run_until_complete(storage.load_context("chat-1"))
    assert ctx.current_intent == "find_person"
    assert ctx.awaiting_input
    assert pool.conn.calls[0][1] == ("chat-1",)


def test_load_context_without_row(asyncio_event_loop, fake_pool, monkeypatch):
    monkeypatch.setattr(storage, "primary_pool", lambda: fake_pool())
    assert asyncio_event_loop.run_until_complete(storage.load_context("chat-1")) is None


def test_save_context_upserts(asyncio_event_loop, fake_pool, monkeypatch):
    pool = fake_pool()
    monkeypatch.setattr(storage, "primary_pool", lambda: pool)
    ctx = ConversationContext(current_intent="find_club_members", pending_field="year", collected={"club": "Robotics"})

    asyncio_event_loop.run_until_complete(storage.save_context("chat-1", ctx))
    sql, (chat_id, state) = pool.conn.calls[0]
    assert "ON CONFLICT (chat_id)" in sql
    assert chat_id == "chat-1"
    assert state.obj["collected"] == {"club": "Robotics"}


def test_record_event_inserts_row(fake_pool, monkeypatch):
    pool = fake_pool()
    monkeypatch.setattr(analytics, "primary_pool", lambda: pool)
    analytics.record_event("chat-1", "device-1", "assistant", intent="find_person", kind="clarify")
    assert pool.conn.calls[0][1] == ("chat-1", "device-1", "assistant", "find_person", "clarify")
