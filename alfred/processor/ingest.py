"""
Feed ingesters.

Each ingester normalizes its source into FeedItem objects and swallows
its own failures: a slow or broken source contributes an empty list and
never aborts the cycle.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import feedparser
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

from alfred.processor.schemas import FeedItem

logger = logging.getLogger('curator.ingest')

HN_API_BASE = 'https://hacker-news.firebaseio.com/v0'
HN_ITEM_URL = 'https://news.ycombinator.com/item?id={id}'
X_SEARCH_URL = 'https://api.twitter.com/2/tweets/search/recent'

SNIPPET_LENGTH = 300
TAG_RE = re.compile(r'<[^>]+>')
WS_RE = re.compile(r'\s+')


def _clean_text(text: str, limit: int = SNIPPET_LENGTH) -> str:
    return WS_RE.sub(' ', TAG_RE.sub('', text or '')).strip()[:limit]


def _entry_published(entry) -> datetime | None:
    struct = entry.get('published_parsed') or entry.get('updated_parsed')
    if not struct:
        return None
    return datetime(*struct[:6], tzinfo=timezone.utc)


# ============================================================================
# RSS
# ============================================================================

def fetch_rss_feed(client: httpx.Client, name: str, url: str, timeout: float = 10.0,
                   max_age_hours: float | None = None) -> list[FeedItem]:
    """Fetch one RSS/Atom feed. Returns [] on any fetch or parse failure."""
    try:
        resp = client.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"RSS fetch failed for {name}: {e}")
        return []

    feed = feedparser.parse(resp.content)
    if feed.bozo and not feed.entries:
        logger.warning(f"RSS parse failed for {name}: {feed.get('bozo_exception')}")
        return []

    cutoff = None
    if max_age_hours is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)

    items = []
    for entry in feed.entries:
        title = (entry.get('title') or '').strip()
        if not title:
            continue
        published = _entry_published(entry)
        if cutoff is not None and (published is None or published < cutoff):
            continue
        items.append(FeedItem(
            title=title,
            link=entry.get('link', ''),
            source=name,
            published_at=published.isoformat() if published else None,
            snippet=_clean_text(entry.get('summary', '')),
            author=entry.get('author'),
        ))

    logger.info(f"RSS: {name} — {len(items)} items")
    return items


def fetch_rss_feeds(client: httpx.Client, feeds: dict[str, str], timeout: float = 10.0,
                    max_age_hours: float | None = None) -> list[FeedItem]:
    """Fetch all feeds concurrently; output keeps the configured feed order."""
    if not feeds:
        return []
    with ThreadPoolExecutor(max_workers=min(8, len(feeds))) as pool:
        results = pool.map(
            lambda kv: fetch_rss_feed(client, kv[0], kv[1], timeout, max_age_hours),
            feeds.items(),
        )
        articles = [item for items in results for item in items]

    logger.info(f"RSS: fetched {len(articles)} articles from {len(feeds)} feeds")
    return articles


# ============================================================================
# Hacker News
# ============================================================================

@retry(stop=stop_after_attempt(2), wait=wait_exponential(min=1, max=4), reraise=True)
def fetch_top_story_ids(client: httpx.Client, timeout: float = 10.0) -> list[int]:
    resp = client.get(f"{HN_API_BASE}/topstories.json", timeout=timeout)
    resp.raise_for_status()
    return resp.json() or []


def _fetch_hn_item(client: httpx.Client, story_id: int, timeout: float) -> dict | None:
    try:
        resp = client.get(f"{HN_API_BASE}/item/{story_id}.json", timeout=timeout)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug(f"HN item {story_id} failed: {e}")
        return None


def fetch_hackernews(client: httpx.Client, count: int = 15, timeout: float = 10.0,
                     item_timeout: float = 5.0) -> list[FeedItem]:
    """Ranked id list, then the first ``count`` items fetched concurrently."""
    try:
        story_ids = fetch_top_story_ids(client, timeout)[:count]
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"HN: failed to fetch top stories: {e}")
        return []

    if not story_ids:
        return []

    with ThreadPoolExecutor(max_workers=min(8, len(story_ids))) as pool:
        stories = list(pool.map(lambda sid: _fetch_hn_item(client, sid, item_timeout), story_ids))

    articles = []
    for story in stories:
        if not story or not story.get('title'):
            continue
        posted = story.get('time')
        articles.append(FeedItem(
            title=story['title'],
            link=story.get('url') or HN_ITEM_URL.format(id=story.get('id')),
            source='Hacker News',
            published_at=datetime.fromtimestamp(posted, tz=timezone.utc).isoformat() if posted else None,
            snippet=_clean_text(story.get('text', '')),
            author=story.get('by'),
            points=story.get('score') or 0,
        ))

    logger.info(f"HN: fetched {len(articles)} stories")
    return articles


# ============================================================================
# X keyword search
# ============================================================================

def fetch_x_search(client: httpx.Client, bearer_token: str | None, query: str,
                   max_results: int = 20, timeout: float = 10.0) -> list[FeedItem]:
    """Recent keyword search. Disabled (returns []) without a bearer token."""
    if not bearer_token:
        return []

    params = {
        'query': query,
        'max_results': max(10, min(max_results, 100)),
        'tweet.fields': 'created_at,author_id',
        'expansions': 'author_id',
        'user.fields': 'username,name',
    }
    try:
        resp = client.get(
            X_SEARCH_URL,
            params=params,
            headers={'Authorization': f'Bearer {bearer_token}'},
            timeout=timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"X search failed: {e}")
        return []

    users = {u['id']: u for u in (payload.get('includes') or {}).get('users', [])}

    items = []
    for tweet in payload.get('data') or []:
        text = tweet.get('text') or ''
        title = _clean_text(text.split('\n', 1)[0], limit=200)
        if not title:
            continue
        user = users.get(tweet.get('author_id'))
        username = user.get('username') if user else None
        if username:
            link = f"https://x.com/{username}/status/{tweet['id']}"
            author = f"@{username}"
        else:
            link = f"https://x.com/i/web/status/{tweet['id']}"
            author = tweet.get('author_id')
        items.append(FeedItem(
            title=title,
            link=link,
            source='X',
            published_at=tweet.get('created_at'),
            snippet=_clean_text(text),
            author=author,
        ))

    logger.info(f"X: fetched {len(items)} posts")
    return items
