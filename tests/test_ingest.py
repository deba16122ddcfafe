"""
Feed ingester tests.

Tests:
- RSS parsing, snippet cleanup, max-age filter and failure → []
- Hacker News ranked fetch, fallback link, per-item failures
- X search: disabled without a token, username links, HTTP errors

All HTTP goes through httpx.MockTransport.

Run with: pytest tests/test_ingest.py -v
"""
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx

from alfred.processor import ingest
from alfred.processor.ingest import (
    fetch_hackernews,
    fetch_rss_feed,
    fetch_rss_feeds,
    fetch_x_search,
)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _rss(*entries) -> bytes:
    items = ''.join(
        f"<item><title>{title}</title><link>{link}</link>"
        f"<description>{desc}</description><pubDate>{pub}</pubDate></item>"
        for title, link, desc, pub in entries
    )
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>'
        f'{items}</channel></rss>'
    ).encode()


def _pub(hours_ago: float) -> str:
    return format_datetime(datetime.now(timezone.utc) - timedelta(hours=hours_ago))


# ---------------------------------------------------------------------------
# RSS
# ---------------------------------------------------------------------------

class TestRSS:
    def test_parses_entries_into_feed_items(self):
        body = _rss(
            ("Bitcoin hits new high", "https://coindesk.com/a", "&lt;p&gt;Price   up&lt;/p&gt;", _pub(1)),
            ("Ether upgrade ships", "https://coindesk.com/b", "Details", _pub(2)),
        )
        client = _client(lambda request: httpx.Response(200, content=body))

        items = fetch_rss_feed(client, "CoinDesk", "https://coindesk.com/rss")

        assert [i.title for i in items] == ["Bitcoin hits new high", "Ether upgrade ships"]
        assert items[0].source == "CoinDesk"
        assert items[0].link == "https://coindesk.com/a"
        assert items[0].snippet == "Price up"
        assert items[0].published_at is not None

    def test_max_age_drops_old_entries(self):
        body = _rss(
            ("Fresh story", "https://x/1", "", _pub(1)),
            ("Stale story", "https://x/2", "", _pub(30)),
        )
        client = _client(lambda request: httpx.Response(200, content=body))

        items = fetch_rss_feed(client, "Decrypt", "https://decrypt.co/feed", max_age_hours=8)

        assert [i.title for i in items] == ["Fresh story"]

    def test_http_error_returns_empty(self):
        client = _client(lambda request: httpx.Response(503))
        assert fetch_rss_feed(client, "Down", "https://down.example/rss") == []

    def test_connect_error_returns_empty(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)
        assert fetch_rss_feed(_client(handler), "Down", "https://down.example/rss") == []

    def test_garbage_body_returns_empty(self):
        client = _client(lambda request: httpx.Response(200, content=b"not a feed at all"))
        assert fetch_rss_feed(client, "Junk", "https://junk.example/rss") == []

    def test_feeds_keep_configured_order_and_skip_failures(self):
        bodies = {
            "a.example": _rss(("From A", "https://a/1", "", _pub(1))),
            "c.example": _rss(("From C", "https://c/1", "", _pub(1))),
        }

        def handler(request):
            body = bodies.get(request.url.host)
            return httpx.Response(200, content=body) if body else httpx.Response(500)

        feeds = {"A": "https://a.example/rss", "B": "https://b.example/rss", "C": "https://c.example/rss"}
        items = fetch_rss_feeds(_client(handler), feeds)

        assert [(i.source, i.title) for i in items] == [("A", "From A"), ("C", "From C")]


# ---------------------------------------------------------------------------
# Hacker News
# ---------------------------------------------------------------------------

class TestHackerNews:
    def _handler(self, stories, top_ids=None):
        def handler(request):
            path = request.url.path
            if path.endswith("/topstories.json"):
                return httpx.Response(200, json=top_ids if top_ids is not None else list(stories))
            story_id = int(path.rsplit("/", 1)[-1].split(".")[0])
            story = stories.get(story_id)
            return httpx.Response(200, json=story) if story else httpx.Response(404)
        return handler

    def test_fetches_ranked_stories(self):
        stories = {
            1: {"id": 1, "title": "Rust 2.0", "url": "https://rust.example", "score": 320, "by": "alice", "time": 1_700_000_000},
            2: {"id": 2, "title": "Ask HN: hiring?", "score": 12, "by": "bob"},
        }
        items = fetch_hackernews(_client(self._handler(stories)), count=15)

        assert [i.title for i in items] == ["Rust 2.0", "Ask HN: hiring?"]
        assert items[0].source == "Hacker News"
        assert items[0].points == 320
        assert items[0].author == "alice"
        assert items[1].link == "https://news.ycombinator.com/item?id=2"

    def test_respects_count(self):
        stories = {i: {"id": i, "title": f"Story {i}"} for i in range(1, 6)}
        items = fetch_hackernews(_client(self._handler(stories)), count=2)
        assert [i.title for i in items] == ["Story 1", "Story 2"]

    def test_failed_items_are_skipped(self):
        stories = {1: {"id": 1, "title": "Survivor"}}
        items = fetch_hackernews(_client(self._handler(stories, top_ids=[1, 2, 3])))
        assert [i.title for i in items] == ["Survivor"]

    def test_top_stories_failure_returns_empty(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(500)

        assert fetch_hackernews(_client(handler)) == []
        # one retry on the id list
        assert calls.count("/v0/topstories.json") == 2


# ---------------------------------------------------------------------------
# X
# ---------------------------------------------------------------------------

class TestXSearch:
    def test_disabled_without_token(self):
        def handler(request):
            raise AssertionError("no request expected")
        assert fetch_x_search(_client(handler), None, "bitcoin") == []

    def test_maps_tweets_with_usernames(self):
        payload = {
            "data": [
                {"id": "100", "text": "EigenLayer slashing goes live\nmore text", "author_id": "u1",
                 "created_at": "2026-03-01T10:00:00Z"},
                {"id": "101", "text": "Anonymous post", "author_id": "u9"},
            ],
            "includes": {"users": [{"id": "u1", "username": "eigen", "name": "Eigen"}]},
        }
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json=payload)

        items = fetch_x_search(_client(handler), "tok", "eigenlayer", max_results=5)

        assert seen["auth"] == "Bearer tok"
        assert seen["url"].startswith(ingest.X_SEARCH_URL)
        assert "max_results=10" in seen["url"]
        assert items[0].title == "EigenLayer slashing goes live"
        assert items[0].link == "https://x.com/eigen/status/100"
        assert items[0].author == "@eigen"
        assert items[0].source == "X"
        assert items[1].link == "https://x.com/i/web/status/101"

    def test_http_error_returns_empty(self):
        client = _client(lambda request: httpx.Response(429))
        assert fetch_x_search(client, "tok", "bitcoin") == []
