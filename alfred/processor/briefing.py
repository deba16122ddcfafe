"""
Headline briefing — no LLM required.

Ranks recent articles by weighted topic keywords, Hacker News points,
recency and source credibility, then formats the top N as plain text.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable

from alfred.processor.schemas import FeedItem

logger = logging.getLogger('curator')

TOPIC_WEIGHTS = {
    # Crypto / web3
    'bitcoin': 3, 'btc': 3, 'ethereum': 3, 'eth': 3, 'crypto': 2,
    'defi': 3, 'nft': 2, 'blockchain': 2, 'solana': 2, 'layer 2': 3,
    'rollup': 3, 'eigenlayer': 5, 'restaking': 4, 'avs': 4,
    'staking': 3, 'airdrop': 2, 'token': 2, 'dao': 2,
    # AI / tech
    'ai': 2, 'artificial intelligence': 2, 'machine learning': 2, 'llm': 3,
    'openai': 2, 'anthropic': 2, 'gpu': 2, 'inference': 3,
    # Market
    'sec': 2, 'regulation': 2, 'etf': 3, 'fed': 2, 'rate': 1,
    'bull': 1, 'bear': 1, 'rally': 1, 'crash': 2,
    # Lower priority
    'meme': -1, 'celebrity': -2, 'scam': -1,
}

SOURCE_MULT = {
    'CoinDesk': 1.2,
    'Blockworks': 1.3,
    'The Block': 1.2,
    'CoinTelegraph': 1.0,
    'Decrypt': 1.1,
    'TechCrunch': 1.1,
    'Hacker News': 1.0,
}

CRYPTO_RE = re.compile(r'bitcoin|ethereum|crypto|defi|nft|token|blockchain|solana|eigenlayer|avs|restaking', re.I)
AI_RE = re.compile(r'\bai\b|artificial intelligence|llm|gpt|model|machine learning|neural', re.I)

EMPTY_BRIEFING = 'No notable news in the last cycle.'


def relevance_score(item: FeedItem, now: datetime | None = None) -> float:
    # Plain substring matching: 'eth' also counts inside 'ethereum'
    text = f"{item.title} {item.snippet}".lower()
    score = float(sum(weight for kw, weight in TOPIC_WEIGHTS.items() if kw in text))

    if item.points:
        score += min(item.points / 100, 3)

    if item.published_at:
        now = now or datetime.now(timezone.utc)
        try:
            published = datetime.fromisoformat(item.published_at)
        except ValueError:
            published = None
        if published is not None:
            if published.tzinfo is None:
                published = published.replace(tzinfo=timezone.utc)
            age_hours = (now - published).total_seconds() / 3600
            if age_hours < 2:
                score += 2
            elif age_hours < 4:
                score += 1

    score *= SOURCE_MULT.get(item.source, 1.0)
    return round(score, 2)


def rank_articles(items: list[FeedItem], top_n: int = 10,
                  now: datetime | None = None) -> list[tuple[FeedItem, float]]:
    scored = [(item, relevance_score(item, now)) for item in items]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    top = scored[:top_n]
    logger.info(f"Ranked {len(items)} articles, returning top {len(top)}")
    return top


def generate_briefing(articles: list[FeedItem], now: datetime | None = None) -> str:
    if not articles:
        return EMPTY_BRIEFING

    now = now or datetime.now(timezone.utc)
    sections = {'CRYPTO & WEB3': [], 'AI & TECH': [], 'GENERAL': []}
    for a in articles:
        text = f"{a.title} {a.snippet}"
        if CRYPTO_RE.search(text):
            sections['CRYPTO & WEB3'].append(a)
        elif AI_RE.search(text):
            sections['AI & TECH'].append(a)
        else:
            sections['GENERAL'].append(a)

    lines = [f"NEWS BRIEFING | {now.strftime('%a, %b %d, %H:%M')} UTC", '']
    for heading, group in sections.items():
        if not group:
            continue
        lines.append(heading)
        for a in group:
            lines.append(f"• {a.title}")
            lines.append(f"  {a.source} — {a.link}")
        lines.append('')

    sources = {a.source for a in articles}
    lines.append(f"{len(articles)} articles curated from {len(sources)} sources")
    return '\n'.join(lines)


def run_news_cycle(fetch_items: Callable[[], list[FeedItem]], top_n: int = 10) -> dict:
    """Fetch → rank → format. Returns the briefing text and the ranked list."""
    articles = fetch_items()
    if not articles:
        logger.info("No articles found — empty briefing")
        return {'briefing': EMPTY_BRIEFING, 'articleCount': 0, 'articles': []}

    ranked = rank_articles(articles, top_n)
    top = [item for item, _ in ranked]
    return {
        'briefing': generate_briefing(top),
        'articleCount': len(top),
        'articles': [
            {'title': item.title, 'source': item.source, 'link': item.link, 'score': score}
            for item, score in ranked
        ],
    }
