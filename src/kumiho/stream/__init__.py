"""Kumiho event stream: SSE parsing, filters, cursor stores, sinks and the consumer."""

from kumiho.stream.checkpoint_store import (
    CursorStore,
    InMemoryCursorStore,
    JsonFileCursorStore,
    create_cursor_store,
)
from kumiho.stream.consumer import StreamingConsumer, build_stream_url
from kumiho.stream.events import SseEvent
from kumiho.stream.filters import (
    EventFilterPipeline,
    FilterConfig,
    StreamAction,
    TriggerType,
    routing_key_filter,
)
from kumiho.stream.sinks import CallbackSink, EventSink, JsonLinesSink, QueueSink
from kumiho.stream.sse import SseFrameParser, decode_event

__all__ = [
    "CallbackSink",
    "CursorStore",
    "EventFilterPipeline",
    "EventSink",
    "FilterConfig",
    "InMemoryCursorStore",
    "JsonFileCursorStore",
    "JsonLinesSink",
    "QueueSink",
    "SseEvent",
    "SseFrameParser",
    "StreamAction",
    "StreamingConsumer",
    "TriggerType",
    "build_stream_url",
    "create_cursor_store",
    "decode_event",
    "routing_key_filter",
]
