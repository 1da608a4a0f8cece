import asyncio
import base64

import pytest

from relay_core.domain.exceptions import ValidationError
from relay_core.domain.models import ImageAttachment
from relay_core.memory import ChatMemoryStore
from relay_core.providers.client import SENTINEL_REPLY
from relay_core.relay import ChatRelay
from relay_core.relay.attachments import build_image_attachment, guess_mime_type


class FakeClient:
    backend_name = "fake"

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []
        self.approvals = []

    async def generate(self, messages, system_prompt):
        self.calls.append((list(messages), system_prompt))
        return self.replies.pop(0)

    async def approve_label(self, field_name, value):
        self.approvals.append((field_name, value))
        return value == "ok"


def make_relay(tmp_path, replies, max_reply_chars=1800):
    client = FakeClient(replies)
    store = ChatMemoryStore(tmp_path / "mem.db", max_history_turns=5)
    return ChatRelay(client, store, "sys", max_reply_chars=max_reply_chars), client, store


def test_run_turn_builds_history_and_normalizes(tmp_path):
    relay, client, store = make_relay(tmp_path, [r'{"answer": "$\\frac{1}{2}$"}', "second"])

    async def scenario():
        first = await relay.run_turn(1, "what is half?")
        second = await relay.run_turn(1, "and then?")
        return first, second, await store.get_history(1)

    first, second, history = asyncio.run(scenario())
    assert first == "(1)/(2)"
    assert second == "second"

    messages, system_prompt = client.calls[1]
    assert system_prompt == "sys"
    assert [(m.role, m.content) for m in messages] == [
        ("user", "what is half?"),
        ("assistant", "(1)/(2)"),
        ("user", "and then?"),
    ]
    assert [t.role for t in history] == ["user", "assistant", "user", "assistant"]


def test_run_turn_uses_fallback_prompt_for_blank_input(tmp_path):
    relay, client, _ = make_relay(tmp_path, ["hi!"])
    asyncio.run(relay.run_turn(1, "   ", fallback_prompt="Describe the image."))
    messages, _ = client.calls[0]
    assert messages[-1].content == "Describe the image."


def test_images_sent_but_only_counted_in_memory(tmp_path):
    relay, client, store = make_relay(tmp_path, ["nice cat"])
    img = ImageAttachment(mime_type="image/png", data_b64="QUJD")

    async def scenario():
        await relay.run_turn(3, "look", images=[img, img])
        return await store.get_history(3)

    history = asyncio.run(scenario())
    messages, _ = client.calls[0]
    assert messages[-1].images == (img, img)
    assert history[0].content == "look\n[attached_images=2]"
    assert history[1].content == "nice cat"


def test_sentinel_reply_is_stored_like_any_reply(tmp_path):
    relay, _, store = make_relay(tmp_path, [SENTINEL_REPLY])

    async def scenario():
        reply = await relay.run_turn(1, "hello")
        return reply, await store.get_history(1)

    reply, history = asyncio.run(scenario())
    assert reply == SENTINEL_REPLY
    assert history[-1].content == SENTINEL_REPLY


def test_reply_chunks_and_reset(tmp_path):
    relay, _, store = make_relay(tmp_path, ["x" * 250], max_reply_chars=100)

    async def scenario():
        reply = await relay.run_turn(1, "long please")
        deleted = await relay.reset(1)
        return reply, deleted, await store.get_history(1)

    reply, deleted, history = asyncio.run(scenario())
    assert [len(c) for c in relay.reply_chunks(reply)] == [100, 100, 50]
    assert relay.reply_chunks("") == ["(no content)"]
    assert deleted == 2
    assert history == []


def test_approve_label_delegates(tmp_path):
    relay, client, _ = make_relay(tmp_path, [])
    assert asyncio.run(relay.approve_label("nickname", "ok")) is True
    assert asyncio.run(relay.approve_label("nickname", "bad")) is False
    assert client.approvals == [("nickname", "ok"), ("nickname", "bad")]


def test_guess_mime_type():
    assert guess_mime_type("photo.JPG") == "image/jpeg"
    assert guess_mime_type("scan.tif") == "image/tiff"
    assert guess_mime_type("notes.txt") == "application/octet-stream"
    assert guess_mime_type("") == "application/octet-stream"


def test_build_image_attachment():
    att = build_image_attachment(b"ABC", "a.png", None, max_bytes=10)
    assert att == ImageAttachment(mime_type="image/png", data_b64=base64.b64encode(b"ABC").decode())
    # content_type 优先于扩展名
    assert build_image_attachment(b"ABC", "a.bin", "IMAGE/WEBP", max_bytes=10).mime_type == "image/webp"
    assert build_image_attachment(b"ABC", "a.txt", None, max_bytes=10) is None


def test_build_image_attachment_too_large():
    with pytest.raises(ValidationError) as exc:
        build_image_attachment(b"x" * 11, "big.png", "image/png", max_bytes=10)
    assert exc.value.code == "IMAGE_TOO_LARGE"
