"""Tests for the NDJSON codec and the event channel."""

import asyncio
import json

import pytest

from expense_assistant.streaming import (
    DoneEvent,
    ErrorEvent,
    EventChannel,
    SafetyBlockResponse,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
    decode_line,
    encode_event,
)


class TestEncoding:
    """Wire format of events."""

    def test_one_line_per_event(self):
        line = encode_event(TextEvent(content="multi\nline"))
        assert line.endswith("\n")
        assert line.count("\n") == 1
        assert json.loads(line) == {"type": "text", "content": "multi\nline"}

    def test_done_uses_camel_case_id(self):
        line = encode_event(DoneEvent(conversation_id="abc"))
        assert json.loads(line) == {"type": "done", "conversationId": "abc"}

    def test_tool_result_payload(self):
        event = ToolResultEvent(tool="create_bill", result={"success": True, "data": {"count": 1}})
        assert json.loads(encode_event(event))["result"]["data"] == {"count": 1}


class TestDecoding:
    """Parsing lines received by the client."""

    @pytest.mark.parametrize("event", [
        TextEvent(content="Hello"),
        ToolStartEvent(tool="list_categories"),
        ErrorEvent(error="Failed to process tool results"),
        DoneEvent(conversation_id="abc"),
        SafetyBlockResponse(message="I can only help with expense tracking."),
    ])
    def test_decodes_every_event_type(self, event):
        assert decode_line(encode_event(event)) == event

    def test_done_by_alias(self):
        event = decode_line('{"type": "done", "conversationId": "c-1"}')
        assert isinstance(event, DoneEvent)
        assert event.conversation_id == "c-1"

    @pytest.mark.parametrize("line", [
        "",
        "   ",
        "not json",
        '{"type": "unknown"}',
        '{"type": "text"}',
        '{"content": "no type"}',
    ])
    def test_malformed_lines(self, line):
        assert decode_line(line) is None

    def test_events_are_immutable(self):
        event = TextEvent(content="a")
        with pytest.raises(Exception):
            event.content = "b"


class TestEventChannel:
    """Producer/consumer handoff."""

    @pytest.mark.asyncio
    async def test_delivers_in_order_until_finished(self):
        channel = EventChannel(maxsize=8)
        await channel.send(TextEvent(content="a"))
        await channel.send(TextEvent(content="b"))
        await channel.finish()

        received = [event.content async for event in channel]

        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_send_after_close_is_dropped(self):
        channel = EventChannel()
        channel.close()

        assert channel.closed
        assert await channel.send(TextEvent(content="a")) is False

    @pytest.mark.asyncio
    async def test_send_after_finish_is_dropped(self):
        channel = EventChannel()
        await channel.finish()
        assert await channel.send(TextEvent(content="late")) is False

    @pytest.mark.asyncio
    async def test_close_unblocks_full_producer(self):
        channel = EventChannel(maxsize=1)
        await channel.send(TextEvent(content="fills the queue"))

        blocked = asyncio.create_task(channel.send(TextEvent(content="waits")))
        await asyncio.sleep(0)
        assert not blocked.done()

        channel.close()
        await asyncio.wait_for(blocked, timeout=1)
        await channel.finish()

    @pytest.mark.asyncio
    async def test_concurrent_producer(self):
        channel = EventChannel(maxsize=2)

        async def produce():
            for i in range(10):
                await channel.send(TextEvent(content=str(i)))
            await channel.finish()

        producer = asyncio.create_task(produce())
        received = [event.content async for event in channel]
        await producer

        assert received == [str(i) for i in range(10)]
