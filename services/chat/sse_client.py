import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional

import httpx

from shared.chat.errors import SubscriptionLost
from shared.logging.logger import get_logger
from services.chat.transport import PayloadHandler, StateHandler

log = get_logger("services.chat.sse")


class SSEUnavailable(Exception):
    """
    Raised when the SSE endpoint keeps refusing to stream (non-200 or
    non-event-stream responses, or repeated network errors). Callers treat it
    as a lost subscription.

    HTTP 204 is a keepalive, not a failure: the server is up but has nothing
    to send yet.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SSEEvent:
    """
    Lightweight container for SSE frames.

    Frames use the standard event/data/id triplets; the payload is left as
    text so the subscriber owns decoding and validation.
    """

    event: str
    data: str
    event_id: Optional[str] = None


class ChatSSEClient:
    """
    Minimal SSE client for one chat topic stream.

    Rules:
    - Connects to a single URL for its whole lifetime
    - Handles keepalives, reconnect backoff, and Last-Event-ID for resume
    - Yields decoded SSEEvent objects without opinionated parsing
    - Reports connect/disconnect through an optional state callback
    """

    MAX_STATUS_FAILURES = 3
    MAX_ERROR_FAILURES = 5

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        on_state: Optional[Callable[[bool, Optional[str]], None]] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        keepalive_delay: float = 2.0,
    ):
        self.url = url

        base_headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }

        if headers:
            base_headers.update(headers)

        self._base_headers = base_headers

        # Allow caller to supply a shared client; otherwise own lifecycle
        self._client = client or httpx.AsyncClient(
            headers=self._base_headers,
            timeout=httpx.Timeout(timeout, read=None),
            follow_redirects=True,
        )

        self._client_owned = client is None
        self._closed = False
        self._last_event_id: Optional[str] = None
        self._on_state = on_state
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff
        self._keepalive_delay = keepalive_delay

    @property
    def last_event_id(self) -> Optional[str]:
        return self._last_event_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def released(self) -> bool:
        """True once the underlying httpx client no longer needs closing."""
        return not self._client_owned or self._client.is_closed

    def _report(self, connected: bool, reason: Optional[str] = None) -> None:
        if self._on_state is None:
            return
        try:
            self._on_state(connected, reason)
        except Exception as e:
            log.error(f"SSE state callback failed (url={self.url}): {e}")

    # ------------------------------------------------------------------

    async def iter_events(self) -> AsyncIterator[SSEEvent]:
        """
        Connect to the SSE endpoint and yield parsed frames.

        Reconnects with bounded backoff and reuses Last-Event-ID when the
        server provides one. Callers should cancel/close to stop iteration.
        """

        backoff_seconds = self._initial_backoff
        failure_count = 0

        while not self._closed:
            headers = dict(self._base_headers)
            if self._last_event_id:
                headers["Last-Event-ID"] = self._last_event_id

            try:
                async with self._client.stream("GET", self.url, headers=headers) as resp:
                    ct = resp.headers.get("content-type")
                    status = resp.status_code

                    if status == 204:
                        log.info("SSE keepalive HTTP 204 (url=%s) — waiting for events", self.url)
                        failure_count = 0
                        await asyncio.sleep(self._keepalive_delay)
                        continue

                    if status != 200 or (ct and "text/event-stream" not in ct):
                        body_preview = ""
                        try:
                            raw = await resp.aread()
                            body_preview = raw.decode(errors="ignore")[:500]
                        except Exception:
                            body_preview = "<unreadable>"

                        log.error(
                            "SSE connection failed [%s] content-type=%s url=%s body=%s",
                            status,
                            ct,
                            self.url,
                            body_preview,
                        )

                        failure_count += 1
                        if failure_count >= self.MAX_STATUS_FAILURES:
                            self._closed = True
                            raise SSEUnavailable(
                                f"Failed to establish SSE after {failure_count} attempts (last status={status})",
                                status_code=status,
                            )

                        await asyncio.sleep(backoff_seconds)
                        backoff_seconds = min(backoff_seconds * 2, self._max_backoff)
                        continue

                    log.info("SSE stream connected (url=%s)", self.url)
                    self._report(True)
                    backoff_seconds = self._initial_backoff
                    failure_count = 0

                    async for event in self._read_stream(resp):
                        if event.event_id:
                            self._last_event_id = event.event_id
                        yield event

                    if not self._closed:
                        self._report(False, "stream ended")

            except asyncio.CancelledError:
                raise

            except SSEUnavailable:
                self._report(False, "endpoint unavailable")
                raise

            except Exception as e:
                failure_count += 1
                log.warning(
                    "SSE stream error (url=%s, attempt=%s): %s",
                    self.url,
                    failure_count,
                    e,
                )
                self._report(False, str(e))

                if failure_count >= self.MAX_ERROR_FAILURES:
                    self._closed = True
                    raise SSEUnavailable(
                        f"SSE repeatedly failed after {failure_count} attempts",
                    )

            if self._closed:
                break

            log.debug("SSE retrying in %.1fs (url=%s)", backoff_seconds, self.url)
            await asyncio.sleep(backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, self._max_backoff)

    # ------------------------------------------------------------------

    async def _read_stream(self, resp: httpx.Response) -> AsyncIterator[SSEEvent]:
        """
        Parse a single HTTP response body into SSEEvent objects.
        """
        data_lines: List[str] = []
        event_name: Optional[str] = None
        event_id: Optional[str] = None

        async for raw_line in resp.aiter_lines():
            if self._closed:
                break

            line = raw_line.strip("\ufeff").rstrip("\r")

            # Empty line signals dispatch
            if line == "":
                if data_lines:
                    yield SSEEvent(
                        event=event_name or "message",
                        data="\n".join(data_lines),
                        event_id=event_id or self._last_event_id,
                    )

                data_lines = []
                event_name = None
                event_id = None
                continue

            # Comments/keepalives begin with ':'
            if line.startswith(":"):
                continue

            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue

            if line.startswith("event:"):
                event_name = line[6:].strip() or event_name
                continue

            if line.startswith("id:"):
                event_id = line[3:].strip() or event_id
                continue

        # Flush any trailing data when the stream closes without a blank line
        if data_lines and not self._closed:
            yield SSEEvent(
                event=event_name or "message",
                data="\n".join(data_lines),
                event_id=event_id or self._last_event_id,
            )

    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        self._closed = True

        if self._client_owned:
            try:
                await self._client.aclose()
            except Exception as e:
                log.debug(f"SSE client close failed (url={self.url}): {e}")


class _SSESubscription:
    def __init__(self, client: ChatSSEClient, task: "asyncio.Task[None]") -> None:
        self._client = client
        self._task = task
        self._closer: Optional["asyncio.Task[None]"] = None
        # A task cancelled before its first step never reaches _pump's finally.
        task.add_done_callback(self._on_done)

    @property
    def task(self) -> "asyncio.Task[None]":
        return self._task

    def _on_done(self, task: "asyncio.Task[None]") -> None:
        if self._client.released:
            return
        log.debug(f"Closing SSE client for unstarted subscription (url={self._client.url})")
        self._closer = task.get_loop().create_task(self._client.aclose())

    def cancel(self) -> None:
        self._client._closed = True
        if not self._task.done():
            self._task.cancel()


class SSEPushTransport:
    """
    Push transport backed by one SSE stream per topic.

    The URL template is formatted with ``topic``. Frames whose event name is
    the topic itself or the default ``message`` are forwarded; anything else
    on the stream is ignored. subscribe() must be called from a running loop.
    """

    def __init__(
        self,
        url_template: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
    ) -> None:
        self._url_template = url_template
        self._client = client
        self._headers = headers
        self._timeout = timeout
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff

    def subscribe(
        self,
        topic: str,
        on_payload: PayloadHandler,
        on_state: Optional[StateHandler] = None,
    ) -> _SSESubscription:
        def _state(connected: bool, reason: Optional[str]) -> None:
            if on_state is None:
                return
            on_state(connected, None if connected else SubscriptionLost(topic, reason))

        client = ChatSSEClient(
            self._url_template.format(topic=topic),
            client=self._client,
            headers=self._headers,
            timeout=self._timeout,
            on_state=_state,
            initial_backoff=self._initial_backoff,
            max_backoff=self._max_backoff,
        )
        task = asyncio.get_running_loop().create_task(
            self._pump(topic, client, on_payload)
        )
        return _SSESubscription(client, task)

    async def _pump(
        self,
        topic: str,
        client: ChatSSEClient,
        on_payload: PayloadHandler,
    ) -> None:
        try:
            async for event in client.iter_events():
                if event.event not in (topic, "message"):
                    log.debug(f"Ignoring SSE event '{event.event}' on topic {topic}")
                    continue
                try:
                    on_payload(event.data)
                except Exception as e:
                    log.error(f"SSE payload handler failed (topic={topic}): {e}")
        except asyncio.CancelledError:
            log.debug(f"SSE pump cancelled (topic={topic})")
            raise
        except SSEUnavailable as e:
            log.warning(f"SSE pump stopped (topic={topic}): {e}")
        finally:
            await client.aclose()


__all__ = [
    "ChatSSEClient",
    "SSEEvent",
    "SSEPushTransport",
    "SSEUnavailable",
]
