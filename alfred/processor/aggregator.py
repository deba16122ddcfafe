"""Merge ingester output and drop same-story duplicates by normalized title."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor

import httpx

from alfred.config import Settings
from alfred.processor.ingest import fetch_hackernews, fetch_rss_feeds, fetch_x_search
from alfred.processor.schemas import FeedItem

logger = logging.getLogger('curator.ingest')

MIN_KEY_LENGTH = 5

_NON_ALNUM_RE = re.compile(r'[^a-z0-9\s]')
_WS_RE = re.compile(r'\s+')


def normalize_title(title: str | None) -> str:
    """Lowercase, strip non-alphanumerics, collapse whitespace."""
    key = _NON_ALNUM_RE.sub('', (title or '').lower())
    return _WS_RE.sub(' ', key).strip()


def dedupe_items(items: list[FeedItem]) -> list[FeedItem]:
    """First occurrence wins; keys shorter than MIN_KEY_LENGTH are noise."""
    seen = set()
    unique = []
    for item in items:
        key = normalize_title(item.title)
        if len(key) < MIN_KEY_LENGTH or key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def aggregate_all(client: httpx.Client, settings: Settings,
                  max_age_hours: float | None = None) -> list[FeedItem]:
    """Fetch every configured source concurrently and dedupe the merged list.

    Source order (RSS, Hacker News, X) decides which copy of a duplicated
    story is kept.
    """
    with ThreadPoolExecutor(max_workers=3) as pool:
        rss = pool.submit(fetch_rss_feeds, client, settings.rss_feeds,
                          settings.feed_timeout, max_age_hours)
        hn = pool.submit(fetch_hackernews, client, settings.hn_story_count,
                         settings.feed_timeout, settings.hn_item_timeout)
        x = pool.submit(fetch_x_search, client, settings.x_bearer_token,
                        settings.x_search_query, settings.x_max_results,
                        settings.feed_timeout)
        merged = rss.result() + hn.result() + x.result()

    unique = dedupe_items(merged)
    logger.info(f"Aggregator: {len(merged)} total → {len(unique)} unique articles")
    return unique
