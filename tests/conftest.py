import asyncio
from datetime import datetime, timezone

import pytest

from shared.chat.events import FeedEntry, create_feed_entry

BASE_TIME = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@pytest.fixture
def make_payload():
    """Factory for push payloads in the wire shape."""

    def _make(
        message_id=1,
        created_at=BASE_TIME,
        *,
        text="hello",
        user_id="u1",
        name="Ada Lovelace",
        image="https://example.com/ada.png",
    ):
        created = _iso(created_at) if isinstance(created_at, datetime) else created_at
        return {
            "message": {
                "id": message_id,
                "text": text,
                "userId": user_id,
                "createdAt": created,
            },
            "user": {"id": user_id, "name": name, "image": image},
        }

    return _make


@pytest.fixture
def make_entry():
    """Factory for FeedEntry values."""

    def _make(
        message_id=1,
        created_at=BASE_TIME,
        *,
        text="hello",
        author_id="u1",
        name="Ada Lovelace",
        avatar_url=None,
    ) -> FeedEntry:
        return create_feed_entry(
            message_id=message_id,
            text=text,
            author_id=author_id,
            created_at=created_at,
            name=name,
            avatar_url=avatar_url,
        )

    return _make


@pytest.fixture
def wait_for():
    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait
