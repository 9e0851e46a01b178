from typing import Any, Dict, List, Optional, Protocol

import httpx

from shared.chat.errors import MalformedPayload
from shared.chat.events import FeedEntry, normalize_payload
from shared.logging.logger import get_logger

log = get_logger("services.chat.history")


class HistoryUnavailable(Exception):
    """Raised when the snapshot endpoint cannot produce a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SnapshotProvider(Protocol):
    async def fetch_snapshot(self, topic: str, limit: int) -> List[FeedEntry]:
        ...


def _records(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        messages = payload.get("messages")
        if isinstance(messages, list):
            return messages
    raise HistoryUnavailable("Snapshot response is not a list of messages")


class HistoryClient:
    """
    Fetches the historical snapshot for a topic over HTTP.

    The endpoint returns either a JSON list of message records or an object
    with a ``messages`` list, each record in the push payload shape. Records
    that fail validation are skipped; the rest are returned newest-first.
    """

    def __init__(
        self,
        url_template: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
    ) -> None:
        self._url_template = url_template
        base_headers = {"Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = client or httpx.AsyncClient(
            headers=base_headers,
            timeout=timeout,
            follow_redirects=True,
        )
        self._client_owned = client is None

    async def fetch_snapshot(self, topic: str, limit: int) -> List[FeedEntry]:
        url = self._url_template.format(topic=topic)

        try:
            resp = await self._client.get(url, params={"limit": limit})
        except httpx.HTTPError as e:
            raise HistoryUnavailable(f"Snapshot request failed ({url}): {e}") from e

        if resp.status_code != 200:
            log.error(f"Snapshot fetch failed [{resp.status_code}] url={url}")
            raise HistoryUnavailable(
                f"Snapshot endpoint returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise HistoryUnavailable(f"Snapshot response is not JSON ({url})") from e

        entries: List[FeedEntry] = []
        skipped = 0
        for record in _records(payload):
            try:
                entries.append(normalize_payload(record))
            except MalformedPayload as e:
                skipped += 1
                log.warning(f"[{topic}] Skipping malformed snapshot record: {e.reason}")

        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        log.info(f"[{topic}] Snapshot loaded ({len(entries)} entries, {skipped} skipped)")
        return entries[:limit]

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()


__all__ = ["HistoryClient", "HistoryUnavailable", "SnapshotProvider"]
