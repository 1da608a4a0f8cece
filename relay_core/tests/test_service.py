import asyncio

import pytest

from relay_core.api import service
from relay_core.memory import ChatMemoryStore
from relay_core.relay import ChatRelay


class FakeClient:
    backend_name = "fake"

    def __init__(self, reply="pong", error=None):
        self.reply = reply
        self.error = error

    async def generate(self, messages, system_prompt):
        return self.reply

    async def approve_label(self, field_name, value):
        if self.error:
            raise self.error
        return True


@pytest.fixture
def relay(monkeypatch, tmp_path):
    def install(client, max_reply_chars=1800):
        store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=2)
        r = ChatRelay(client, store, "sys", max_reply_chars=max_reply_chars)
        monkeypatch.setattr(service, "_memory", store)
        monkeypatch.setattr(service, "_relay", r)
        return r

    return install


def test_run_chat_returns_reply_and_chunks(relay):
    relay(FakeClient("hello @everyone " + "y" * 120), max_reply_chars=100)
    result = asyncio.run(service.run_chat(9, "ping"))
    assert result["channel_id"] == 9
    assert result["reply"].startswith("hello @everyone")
    assert result["chunks"][0].startswith("hello @\u200beveryone")
    assert "".join(result["chunks"]) == result["reply"].replace("@everyone", "@\u200beveryone")


def test_reset_channel(relay):
    relay(FakeClient())

    async def scenario():
        await service.run_chat(1, "ping")
        return await service.reset_channel(1)

    assert asyncio.run(scenario()) == 2


def test_approve_label_errors_propagate(relay):
    relay(FakeClient(error=RuntimeError("boom")))
    with pytest.raises(RuntimeError):
        asyncio.run(service.approve_label("nickname", "x"))


def test_start_memory_cleanup_runs_in_background(relay, monkeypatch):
    relay(FakeClient())
    monkeypatch.setattr(service.settings, "memory_idle_ttl_seconds", 300)

    async def scenario():
        task = service.start_memory_cleanup()
        await asyncio.sleep(0)
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
