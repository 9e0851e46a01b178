"""Tests for feed configuration loading."""

from datetime import timedelta

from shared.chat.clock import ClockFormatter, RecentRule
from shared.config.feed import DEFAULT_TOPIC, load_feed_config


def test_defaults():
    config = load_feed_config({}, env={})

    assert config.feed.topic == DEFAULT_TOPIC
    assert config.feed.history_limit == 50
    assert "{topic}" in config.transport.sse_url
    assert config.clock.recent_rule is RecentRule.ELAPSED
    assert config.clock.tzinfo() is None


def test_values_from_document():
    config = load_feed_config(
        {
            "feed": {"topic": "room-7", "history_limit": 10},
            "transport": {"sse_url": "http://x/{topic}", "timeout_seconds": "2.5"},
            "clock": {"recent_rule": "hour_bucket", "recent_window_minutes": 15, "timezone": "UTC"},
        },
        env={},
    )

    assert config.feed.topic == "room-7"
    assert config.feed.history_limit == 10
    assert config.transport.sse_url == "http://x/{topic}"
    assert config.transport.timeout_seconds == 2.5
    assert config.clock.recent_rule is RecentRule.HOUR_BUCKET
    assert config.clock.tzinfo() is not None

    formatter = ClockFormatter.from_config(config.clock)
    assert formatter.window == timedelta(minutes=15)
    assert formatter.rule is RecentRule.HOUR_BUCKET


def test_invalid_values_fall_back():
    config = load_feed_config(
        {
            "feed": {"topic": "  ", "history_limit": "lots"},
            "transport": {"timeout_seconds": "soon"},
            "clock": {"recent_rule": "someday", "recent_window_minutes": -5, "timezone": "Mars/Olympus"},
        },
        env={},
    )

    assert config.feed.topic == DEFAULT_TOPIC
    assert config.feed.history_limit == 50
    assert config.transport.timeout_seconds == 10.0
    assert config.clock.recent_rule is RecentRule.ELAPSED
    assert config.clock.recent_window_minutes == 60
    assert config.clock.tzinfo() is None


def test_non_object_root_uses_defaults():
    config = load_feed_config(["nope"], env={})
    assert config.feed.topic == DEFAULT_TOPIC


def test_environment_overrides():
    config = load_feed_config(
        {"feed": {"topic": "room-7"}},
        env={
            "CHATFEED_TOPIC": "room-9",
            "CHATFEED_HISTORY_LIMIT": "5",
            "CHATFEED_SSE_URL": "http://sse/{topic}",
            "CHATFEED_HISTORY_URL": "http://hist/{topic}",
            "CHATFEED_TIMEZONE": "UTC",
            "CHATFEED_RECENT_RULE": "hour_bucket",
        },
    )

    assert config.feed.topic == "room-9"
    assert config.feed.history_limit == 5
    assert config.transport.sse_url == "http://sse/{topic}"
    assert config.transport.history_url == "http://hist/{topic}"
    assert config.clock.timezone == "UTC"
    assert config.clock.recent_rule is RecentRule.HOUR_BUCKET


def test_shipped_config_file_loads():
    config = load_feed_config(env={})
    assert config.feed.topic == DEFAULT_TOPIC
