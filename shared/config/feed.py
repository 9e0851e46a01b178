"""Chat feed runtime configuration.

Values come from ``shared/config/feed.json`` when present, then from
``CHATFEED_*`` environment variables. Bad values are logged and replaced by
defaults so a view can always mount.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.chat.clock import RecentRule
from shared.logging.logger import get_logger

log = get_logger("shared.config.feed")

_CONFIG_PATH = Path(__file__).parent / "feed.json"

DEFAULT_TOPIC = "global-chat-channel"


@dataclass
class FeedSettings:
    topic: str = DEFAULT_TOPIC
    history_limit: int = 50


@dataclass
class TransportConfig:
    sse_url: str = "http://localhost:3000/api/channels/{topic}/stream"
    history_url: str = "http://localhost:3000/api/channels/{topic}/messages"
    timeout_seconds: float = 10.0


@dataclass
class ClockConfig:
    recent_rule: RecentRule = RecentRule.ELAPSED
    recent_window_minutes: int = 60
    timezone: Optional[str] = None

    def tzinfo(self) -> Optional[tzinfo]:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            log.warning(f"Unknown timezone {self.timezone!r}; using system local time")
            return None


@dataclass
class FeedConfig:
    feed: FeedSettings = field(default_factory=FeedSettings)
    transport: TransportConfig = field(default_factory=TransportConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.debug(f"feed.json not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except Exception as e:  # pragma: no cover - defensive
        log.warning(f"Failed to load feed.json ({e}); using defaults")
        return {}


def _positive_int(value: Any, default: int, name: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        log.warning(f"{name} must be an integer; defaulting to {default}")
        return default
    if parsed <= 0:
        log.warning(f"{name} must be positive; defaulting to {default}")
        return default
    return parsed


def _load_feed_settings(raw: Optional[Dict[str, Any]]) -> FeedSettings:
    if not isinstance(raw, dict):
        return FeedSettings()

    topic = raw.get("topic", FeedSettings.topic)
    if not isinstance(topic, str) or not topic.strip():
        log.warning("feed.topic must be a non-empty string; using default")
        topic = FeedSettings.topic

    limit = _positive_int(
        raw.get("history_limit", FeedSettings.history_limit),
        FeedSettings.history_limit,
        "feed.history_limit",
    )
    return FeedSettings(topic=topic.strip(), history_limit=limit)


def _load_transport(raw: Optional[Dict[str, Any]]) -> TransportConfig:
    if not isinstance(raw, dict):
        return TransportConfig()

    timeout = raw.get("timeout_seconds", TransportConfig.timeout_seconds)
    try:
        timeout_float = float(timeout)
    except (TypeError, ValueError):
        timeout_float = TransportConfig.timeout_seconds

    return TransportConfig(
        sse_url=str(raw.get("sse_url", TransportConfig.sse_url)),
        history_url=str(raw.get("history_url", TransportConfig.history_url)),
        timeout_seconds=timeout_float,
    )


def _load_clock(raw: Optional[Dict[str, Any]]) -> ClockConfig:
    if not isinstance(raw, dict):
        return ClockConfig()

    rule = RecentRule.from_value(raw.get("recent_rule"), default=RecentRule.ELAPSED)
    window = _positive_int(
        raw.get("recent_window_minutes", ClockConfig.recent_window_minutes),
        ClockConfig.recent_window_minutes,
        "clock.recent_window_minutes",
    )
    tz_name = raw.get("timezone")
    return ClockConfig(
        recent_rule=rule,
        recent_window_minutes=window,
        timezone=str(tz_name) if tz_name else None,
    )


def _apply_env(config: FeedConfig, env: Mapping[str, str]) -> FeedConfig:
    def _env(key: str) -> str:
        return (env.get(key) or "").strip()

    if _env("CHATFEED_TOPIC"):
        config.feed.topic = _env("CHATFEED_TOPIC")
    if _env("CHATFEED_HISTORY_LIMIT"):
        config.feed.history_limit = _positive_int(
            _env("CHATFEED_HISTORY_LIMIT"),
            config.feed.history_limit,
            "CHATFEED_HISTORY_LIMIT",
        )
    if _env("CHATFEED_SSE_URL"):
        config.transport.sse_url = _env("CHATFEED_SSE_URL")
    if _env("CHATFEED_HISTORY_URL"):
        config.transport.history_url = _env("CHATFEED_HISTORY_URL")
    if _env("CHATFEED_TIMEZONE"):
        config.clock.timezone = _env("CHATFEED_TIMEZONE")
    if _env("CHATFEED_RECENT_RULE"):
        config.clock.recent_rule = RecentRule.from_value(
            _env("CHATFEED_RECENT_RULE"),
            default=config.clock.recent_rule,
        )
    return config


def load_feed_config(
    raw: Optional[Dict[str, Any]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> FeedConfig:
    raw = raw if raw is not None else _load_json(_CONFIG_PATH)
    if not isinstance(raw, dict):
        log.warning("feed config root is not an object; using defaults")
        raw = {}

    config = FeedConfig(
        feed=_load_feed_settings(raw.get("feed")),
        transport=_load_transport(raw.get("transport")),
        clock=_load_clock(raw.get("clock")),
    )
    return _apply_env(config, os.environ if env is None else env)


__all__ = [
    "ClockConfig",
    "DEFAULT_TOPIC",
    "FeedConfig",
    "FeedSettings",
    "TransportConfig",
    "load_feed_config",
]
