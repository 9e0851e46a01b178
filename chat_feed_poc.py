"""
ChatFeed smoke test: mount one channel feed over SSE + HTTP history and print
rows as they change.
"""

import argparse
import asyncio
from typing import List

from dotenv import load_dotenv

# Before the project imports: module-level loggers read CHATFEED_LOG_DIR.
load_dotenv()

from core.feed_view import ChatFeedView
from runtime.version import as_string
from services.chat.history import HistoryClient
from services.chat.renderer import EMPTY_FEED_TEXT, FeedRow
from services.chat.sse_client import SSEPushTransport
from shared.chat.clock import ClockFormatter
from shared.chat.events import SessionIdentity
from shared.config.feed import load_feed_config
from shared.logging.logger import get_logger

log = get_logger("chatfeed.poc")


def _print_rows(rows: List[FeedRow]) -> None:
    if not rows:
        print(EMPTY_FEED_TEXT)
        return
    print("-" * 60)
    # Oldest at the top, like the chat window.
    for row in reversed(rows):
        marker = ">" if row.is_self else " "
        print(f"{marker} [{row.label}] {row.author_name or '?'}: {row.text}")


async def _run(args) -> None:
    config = load_feed_config()

    topic = args.topic or config.feed.topic
    sse_url = args.sse_url or config.transport.sse_url
    history_url = args.history_url or config.transport.history_url
    session = SessionIdentity(user_id=args.user_id) if args.user_id else None

    log.info(f"{as_string()} — tailing {topic}")

    transport = SSEPushTransport(sse_url, timeout=config.transport.timeout_seconds)
    history = HistoryClient(history_url, timeout=config.transport.timeout_seconds)

    view = ChatFeedView(
        topic=topic,
        transport=transport,
        history=history,
        session=session,
        formatter=ClockFormatter.from_config(config.clock),
        history_limit=config.feed.history_limit,
    )

    try:
        async with view:
            _print_rows(view.rows())
            view.add_rows_listener(_print_rows)
            view.subscriber.connectivity.add_listener(
                lambda status: log.info(f"Connectivity: {status.state.value}")
            )
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        raise
    finally:
        await history.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="ChatFeed live channel smoke test (SSE + HTTP snapshot)"
    )
    parser.add_argument("--topic", help="Channel topic (defaults to config feed.topic)")
    parser.add_argument("--sse-url", help="SSE URL template containing {topic}")
    parser.add_argument("--history-url", help="Snapshot URL template containing {topic}")
    parser.add_argument("--user-id", help="Viewer user id used for row alignment")

    args = parser.parse_args()
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received — shutting down POC")


if __name__ == "__main__":
    main()
