"""Tests for feed row projection."""

from datetime import datetime, timedelta, timezone

from services.chat.renderer import EMPTY_FEED_TEXT, SIDE_OTHER, SIDE_SELF, FeedRenderer
from shared.chat.clock import ClockFormatter
from shared.chat.events import SessionIdentity

NOW = datetime(2024, 3, 15, 15, 0, tzinfo=timezone.utc)


def renderer():
    return FeedRenderer(ClockFormatter(tz=timezone.utc))


def test_alignment_follows_session(make_entry):
    entries = [
        make_entry(2, NOW, author_id="me", name="Grace Hopper"),
        make_entry(1, NOW, author_id="them", name="Ada Lovelace"),
    ]
    rows = renderer().render(entries, SessionIdentity("me", "Grace"), NOW)

    assert [row.side for row in rows] == [SIDE_SELF, SIDE_OTHER]
    assert rows[0].is_self and not rows[1].is_self


def test_without_session_every_row_is_other(make_entry):
    rows = renderer().render([make_entry(1, NOW, author_id="me")], None, NOW)
    assert rows[0].side == SIDE_OTHER


def test_row_fields(make_entry):
    entry = make_entry(
        7,
        NOW - timedelta(hours=3),
        text="see you",
        name="Ada   King Lovelace",
        avatar_url="https://example.com/ada.png",
    )
    row = renderer().render([entry], None, NOW)[0]

    assert row.message_id == 7
    assert row.text == "see you"
    assert row.author_name == "Ada"
    assert row.avatar_url == "https://example.com/ada.png"
    assert row.avatar_fallback == "A"
    assert row.label == "Today at 12:00 PM"


def test_missing_name(make_entry):
    row = renderer().render([make_entry(1, NOW, name=None)], None, NOW)[0]
    assert row.author_name == ""
    assert row.avatar_fallback == ""


def test_rows_keep_feed_order_and_share_now(make_entry):
    entries = [
        make_entry(3, NOW - timedelta(minutes=5)),
        make_entry(2, NOW - timedelta(days=1)),
        make_entry(1, NOW - timedelta(days=4)),
    ]
    rows = renderer().render(entries, None, NOW)

    assert [row.message_id for row in rows] == [3, 2, 1]
    assert [row.label for row in rows] == [
        "2:55 PM",
        "Yesterday at 15:00",
        "03/11/2024 3:00 PM",
    ]


def test_empty_feed():
    assert renderer().render([], None, NOW) == []
    assert EMPTY_FEED_TEXT == "No messages."
