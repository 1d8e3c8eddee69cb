"""
Streaming consumer for the Kumiho event stream.

One consumer owns one reconnect loop:

    Disconnected -> Connecting -> Streaming -> Disconnected
                 -> [reconnect delay] -> Connecting ...

until stop() is called. Within a connection, frames are handled strictly in
order: parse -> decode -> filter -> checkpoint cursor -> deliver. The cursor
is persisted before the event reaches the sink, so a crash between the two
loses at most that one delivery instead of replaying it forever.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

import aiohttp

from core.logging.context_managers import LogContext
from core.logging.utilities import log_exception
from core.types import CredentialSource
from kumiho import metrics
from kumiho.credentials import CredentialResolver
from kumiho.signing import RequestSigner
from kumiho.stream.checkpoint_store import CursorStore, InMemoryCursorStore
from kumiho.stream.events import SseEvent
from kumiho.stream.filters import EventFilterPipeline, FilterConfig
from kumiho.stream.sinks import EventSink
from kumiho.stream.sse import SseFrameParser, decode_event

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/events/stream"
DEFAULT_RECONNECT_DELAY_SECONDS = 30.0
MIN_RECONNECT_DELAY_SECONDS = 1.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0

FilterProvider = Callable[[], FilterConfig]


def build_stream_url(
    base_url: str,
    filter_config: FilterConfig,
    cursor: str | None = None,
    stream_path: str = STREAM_PATH,
) -> str:
    """Connection URL with server-side filters; kref and cursor omitted when empty."""
    params = {"routing_key_filter": filter_config.routing_key_filter}
    kref_filter = filter_config.kref_filter
    if kref_filter:
        params["kref_filter"] = kref_filter
    if cursor:
        params["cursor"] = cursor
    return f"{base_url.rstrip('/')}{stream_path}?{urlencode(params)}"


class StreamingConsumer:
    """
    Long-lived SSE consumer with resumable cursor and client-side filters.

    Args:
        credential_source: Resolved on every connect so rotated tokens apply
        filter_provider: FilterConfig or a callable returning the current one;
            re-read on every connect
        sink: Receives one record per delivered event
        cursor_store: Cursor slot keyed by instance_id (in-memory by default)
        instance_id: Identity of this consumer; scopes the cursor slot
        reconnect_delay_seconds: Wait between connections (floored at 1s)
        cursor_override: Explicit start cursor; wins over the stored cursor
        session: Optional shared aiohttp session (not closed by the consumer)
        sleep: Injectable sleep for the reconnect delay
        on_malformed: Called with the raw payload when it cannot be decoded

    Usage:
        consumer = StreamingConsumer(
            EnvCredentialSource(),
            FilterConfig(TriggerType.ITEM, StreamAction.CREATED, "proj/space"),
            QueueSink(),
            instance_id="trigger-a",
        )
        task = consumer.start_task()
        ...
        await consumer.stop()
    """

    def __init__(
        self,
        credential_source: CredentialSource,
        filter_provider: FilterConfig | FilterProvider,
        sink: EventSink,
        cursor_store: CursorStore | None = None,
        instance_id: str = "default",
        reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        cursor_override: str | None = None,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_malformed: Callable[[str], Any] | None = None,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ):
        if isinstance(filter_provider, FilterConfig):
            fixed = filter_provider

            def filter_provider() -> FilterConfig:
                return fixed

        self.resolver = CredentialResolver(credential_source)
        self.filter_provider = filter_provider
        self.sink = sink
        self.cursor_store = cursor_store or InMemoryCursorStore()
        self.instance_id = instance_id
        self.reconnect_delay_seconds = max(
            MIN_RECONNECT_DELAY_SECONDS, float(reconnect_delay_seconds)
        )
        self.cursor_override = cursor_override or None
        self.on_malformed = on_malformed
        self.connect_timeout_seconds = connect_timeout_seconds

        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._response: aiohttp.ClientResponse | None = None
        self._task: asyncio.Task | None = None
        self._cursor: str | None = None
        self._stopped = False
        self._running = False

        self._events_delivered = 0
        self._events_filtered = 0
        self._events_malformed = 0
        self._connections = 0

    @property
    def cursor(self) -> str | None:
        """Last checkpointed cursor (or the start cursor before any event)."""
        return self._cursor

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stopped(self) -> bool:
        return self._stopped

    def get_stats(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "cursor": self._cursor,
            "connections": self._connections,
            "events_delivered": self._events_delivered,
            "events_filtered": self._events_filtered,
            "events_malformed": self._events_malformed,
        }

    def start_task(self) -> asyncio.Task:
        """Run the loop as a background task owned by this consumer."""
        if self._task is not None and not self._task.done():
            raise RuntimeError(f"Consumer {self.instance_id} is already running")
        self._task = asyncio.create_task(self.run(), name=f"kumiho-stream-{self.instance_id}")
        return self._task

    async def run(self) -> None:
        """Reconnect loop. Returns once stop() has been called."""
        if self._running:
            raise RuntimeError(f"Consumer {self.instance_id} is already running")
        if self._task is None or self._task.done():
            self._task = asyncio.current_task()

        self._running = True
        with LogContext(trigger_id=self.instance_id, stage="stream"):
            try:
                await self._initialize_cursor()
                await self.sink.start()
                logger.info(
                    "Stream consumer started",
                    extra={"instance_id": self.instance_id, "cursor": self._cursor},
                )

                while not self._stopped:
                    await self._run_once()
                    if self._stopped:
                        break

                    logger.info(
                        f"Reconnecting in {self.reconnect_delay_seconds:.1f}s",
                        extra={"reconnect_delay_seconds": self.reconnect_delay_seconds},
                    )
                    await self._sleep(self.reconnect_delay_seconds)

            except asyncio.CancelledError:
                if not self._stopped:
                    raise
            finally:
                self._running = False
                await self._close_response()
                await self._close_session()
                await self.sink.stop()
                logger.info("Stream consumer stopped", extra=self.get_stats())

    async def stop(self) -> None:
        """
        Stop the loop and release the connection.

        Sets the stopped flag first, so a loop that is between connections
        does not reconnect, then aborts any in-flight read.
        """
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping stream consumer", extra={"instance_id": self.instance_id})

        await self._close_response()

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._close_session()

    async def _initialize_cursor(self) -> None:
        if self.cursor_override:
            self._cursor = self.cursor_override
            logger.info(
                "Using explicit start cursor",
                extra={"instance_id": self.instance_id, "cursor": self._cursor},
            )
            return
        self._cursor = await self.cursor_store.load(self.instance_id)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _close_response(self) -> None:
        response = self._response
        self._response = None
        if response is not None:
            response.close()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def build_stream_url(self, base_url: str, filter_config: FilterConfig) -> str:
        return build_stream_url(base_url, filter_config, self._cursor)

    async def _run_once(self) -> None:
        """One connection lifetime. Errors are logged, never raised."""
        if self._stopped:
            return

        url = None
        try:
            filter_config = self.filter_provider()
            pipeline = EventFilterPipeline(filter_config)
            credentials = self.resolver.resolve()
            signed = RequestSigner(credentials).headers_for_stream()
            url = self.build_stream_url(credentials.base_url, filter_config)

            session = await self._ensure_session()
            if self._stopped:
                return

            self._connections += 1
            logger.info(
                "Connecting to event stream",
                extra={
                    "stream_url": url,
                    "routing_key_filter": filter_config.routing_key_filter,
                    "kref_filter": filter_config.kref_filter,
                    "cursor": self._cursor,
                    "correlation_id": signed.correlation_id,
                },
            )
            response = await session.get(
                url,
                headers=signed.headers,
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=self.connect_timeout_seconds
                ),
            )
            self._response = response

            if not 200 <= response.status < 300:
                metrics.record_stream_connection("http_error")
                logger.warning(
                    "Event stream rejected connection",
                    extra={"stream_url": url, "http_status": response.status},
                )
                return

            metrics.record_stream_connection("connected")
            await self._consume(response, pipeline)

            if not self._stopped:
                logger.info("Event stream ended", extra={"stream_url": url})

        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._stopped:
                return
            metrics.record_stream_connection("error")
            log_exception(
                logger,
                e,
                "Event stream failed",
                level=logging.WARNING,
                include_traceback=False,
                stream_url=url,
            )
        finally:
            await self._close_response()

    async def _consume(self, response: aiohttp.ClientResponse, pipeline: EventFilterPipeline) -> None:
        parser = SseFrameParser()
        async for chunk in response.content.iter_any():
            if self._stopped:
                return
            for payload in parser.feed(chunk):
                if self._stopped:
                    return
                await self._handle_payload(payload, pipeline)

    async def _handle_payload(self, payload: str, pipeline: EventFilterPipeline) -> None:
        event = decode_event(payload)
        if event is None:
            self._events_malformed += 1
            metrics.record_stream_event("malformed")
            if self.on_malformed is not None:
                self.on_malformed(payload)
            return

        if not pipeline.accepts(event):
            self._events_filtered += 1
            metrics.record_stream_event("filtered")
            return

        await self._checkpoint(event)

        if self._stopped:
            return
        await self.sink.write(event.to_record())
        self._events_delivered += 1
        metrics.record_stream_event("delivered")

    async def _checkpoint(self, event: SseEvent) -> None:
        if not event.cursor or event.cursor == self._cursor:
            return

        self._cursor = event.cursor
        try:
            await self.cursor_store.save(self.instance_id, event.cursor)
        except Exception as e:
            # In-memory cursor still advances; the store catches up on the next save
            log_exception(
                logger,
                e,
                "Failed to persist stream cursor",
                level=logging.WARNING,
                include_traceback=False,
                cursor=event.cursor,
                instance_id=self.instance_id,
            )
            return
        metrics.record_cursor_checkpoint()
        logger.debug(
            "Checkpointed stream cursor",
            extra={"cursor": event.cursor, "kref": event.kref, "routing_key": event.routing_key},
        )
