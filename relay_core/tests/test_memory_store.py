import asyncio
import logging

import pytest

from relay_core.domain.exceptions import ValidationError
from relay_core.memory import ChatMemoryStore, memory_cleanup_loop


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_history_window_keeps_most_recent(tmp_path):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=2)
    assert store.max_messages == 4

    async def scenario():
        for i in range(5):
            await store.append(1, "user", f"q{i}")
            await store.append(1, "assistant", f"a{i}")
        return await store.get_history(1)

    history = asyncio.run(scenario())
    assert [t.content for t in history] == ["q3", "a3", "q4", "a4"]
    seqs = [t.sequence for t in history]
    assert seqs == sorted(seqs)


def test_minimum_window_is_two_messages(tmp_path):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=0)
    assert store.max_messages == 2


def test_channels_are_isolated(tmp_path):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=1)

    async def scenario():
        await store.append(1, "user", "one")
        await store.append(2, "user", "two")
        await store.append(2, "assistant", "two-reply")
        await store.append(2, "user", "two-again")
        return await store.get_history(1), await store.get_history(2)

    h1, h2 = asyncio.run(scenario())
    assert [t.content for t in h1] == ["one"]
    assert [t.content for t in h2] == ["two-reply", "two-again"]


def test_trim_is_logged(tmp_path, caplog):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=1)

    async def scenario():
        for i in range(3):
            await store.append(7, "user", str(i))

    with caplog.at_level(logging.INFO, logger="relay_core"):
        asyncio.run(scenario())
    assert "memory.trim" in [r.getMessage() for r in caplog.records]


def test_invalid_role_rejected_before_touching_db(tmp_path):
    db = tmp_path / "sub" / "mem.db"
    store = ChatMemoryStore(db, max_history_turns=1)
    with pytest.raises(ValidationError) as exc:
        asyncio.run(store.append(1, "system", "x"))
    assert exc.value.code == "INVALID_ROLE"
    assert not db.exists()


def test_unknown_channel_history_is_empty(tmp_path):
    store = ChatMemoryStore(tmp_path / "nested" / "mem.db", max_history_turns=3)
    assert asyncio.run(store.get_history(42)) == []
    assert (tmp_path / "nested" / "mem.db").exists()


def test_clear_returns_deleted_count(tmp_path):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=3)

    async def scenario():
        await store.append(1, "user", "a")
        await store.append(1, "assistant", "b")
        await store.append(2, "user", "c")
        deleted = await store.clear(1)
        again = await store.clear(1)
        return deleted, again, await store.get_history(1), await store.get_history(2)

    deleted, again, h1, h2 = asyncio.run(scenario())
    assert deleted == 2
    assert again == 0
    assert h1 == []
    assert [t.content for t in h2] == ["c"]


def test_prune_idle_uses_latest_timestamp_per_channel(tmp_path):
    clock = FakeClock(1000.0)
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=5, clock=clock)

    async def scenario():
        await store.append(1, "user", "old")
        await store.append(2, "user", "old-but-active")
        clock.now = 1250.0
        await store.append(2, "assistant", "recent")
        clock.now = 1400.0
        pruned = await store.prune_idle(300)
        return pruned, await store.get_history(1), await store.get_history(2)

    pruned, h1, h2 = asyncio.run(scenario())
    assert pruned == 1
    assert h1 == []
    # 频道 2 最后一条在 1250，未超过 300 秒，整段保留
    assert [t.content for t in h2] == ["old-but-active", "recent"]


def test_prune_idle_non_positive_ttl_is_noop(tmp_path):
    clock = FakeClock(1000.0)
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=5, clock=clock)

    async def scenario():
        await store.append(1, "user", "x")
        clock.now = 10_000.0
        return await store.prune_idle(0), await store.prune_idle(-5), await store.get_history(1)

    zero, negative, history = asyncio.run(scenario())
    assert zero == 0
    assert negative == 0
    assert len(history) == 1


@pytest.mark.parametrize("stripes", [1, 4])
def test_concurrent_appends_keep_window(tmp_path, stripes):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=3, lock_stripes=stripes)

    async def scenario():
        await asyncio.gather(*(store.append(ch, "user", f"{ch}-{i}") for ch in (1, 2, 3) for i in range(10)))
        return [await store.get_history(ch) for ch in (1, 2, 3)]

    histories = asyncio.run(scenario())
    for ch, history in zip((1, 2, 3), histories):
        assert len(history) == 6
        assert all(t.content.startswith(f"{ch}-") for t in history)


def test_initialize_is_idempotent(tmp_path):
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=1)

    async def scenario():
        await store.initialize()
        await store.append(1, "user", "kept")
        await store.initialize()
        return await store.get_history(1)

    assert [t.content for t in asyncio.run(scenario())] == ["kept"]


class RecordingStore:
    def __init__(self, fail_first=False):
        self.calls = []
        self.fail_first = fail_first

    async def prune_idle(self, idle_seconds):
        self.calls.append(idle_seconds)
        if self.fail_first and len(self.calls) == 1:
            raise RuntimeError("db locked")
        return 0


def test_cleanup_loop_disabled_when_ttl_not_positive():
    store = RecordingStore()
    asyncio.run(memory_cleanup_loop(store, idle_ttl_seconds=0, interval_seconds=0.001))
    assert store.calls == []


def test_cleanup_loop_survives_errors_and_stops_on_cancel(caplog):
    store = RecordingStore(fail_first=True)

    async def scenario():
        task = asyncio.create_task(memory_cleanup_loop(store, idle_ttl_seconds=300, interval_seconds=0.001))
        while len(store.calls) < 3:
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level(logging.WARNING, logger="relay_core"):
        asyncio.run(scenario())
    assert store.calls[:3] == [300, 300, 300]
    assert "memory.cleanup.error" in [r.getMessage() for r in caplog.records]
