"""
Signal scorer.

Primary path asks a remote LLM for a bare 1-10 rating. When the call
fails, times out or returns something unparseable, a deterministic keyword
score is used instead, so an item is never dropped because the remote
scorer is down.
"""

import logging
import re

from openai import OpenAI, OpenAIError

from alfred.config import Settings
from alfred.errors import TransientSourceError
from alfred.processor.schemas import FeedItem, ScoreResult

logger = logging.getLogger('curator.scorer')

SYSTEM_PROMPT = (
    "You are a senior news editor at a tech and crypto intelligence service. "
    "Reply with only a single number from 1 to 10."
)

USER_PROMPT = (
    "Rate this news headline from 1-10 based on significance and novelty. "
    "Topics: crypto, blockchain, AI, technology, business, macro economics. "
    "1=routine/spam, 5=mildly interesting, 8=important development, "
    "10=critical breaking event. Reply with ONLY the number.\n\n\"{title}\""
)

MIN_SCORE = 1
MAX_SCORE = 10

# ============================================================================
# Keyword fallback
# ============================================================================

BASELINE_SCORE = 5
HIGH_BONUS = 2
MEDIUM_BONUS = 1

HIGH_KEYWORDS = [
    'bitcoin', 'btc', 'ethereum', 'eigenlayer', 'etf', 'sec', 'cftc',
    'regulation', 'regulatory', 'approval', 'approved', 'ban', 'hack',
    'exploit', 'breach', 'billion', 'trillion', 'federal reserve',
]

MEDIUM_KEYWORDS = [
    'launch', 'launches', 'upgrade', 'mainnet', 'testnet', 'partnership',
    'integration', 'funding', 'raises', 'acquires', 'acquisition', 'lawsuit',
    'listing', 'airdrop', 'staking', 'restaking', 'rollup', 'layer 2',
    'stablecoin', 'defi', 'openai', 'anthropic', 'llm', 'million',
]

_MONEY_RE = re.compile(r'\$\s?\d[\d,.]*\s?(?:b|bn|billion|m|mn|million)\b')


def _keyword_patterns(keywords: list[str]) -> list[re.Pattern]:
    return [re.compile(rf'\b{re.escape(kw)}\b') for kw in keywords]


_HIGH_PATTERNS = _keyword_patterns(HIGH_KEYWORDS)
_MEDIUM_PATTERNS = _keyword_patterns(MEDIUM_KEYWORDS)


def keyword_score(title: str, snippet: str = '') -> int:
    """Baseline 5, +2 for any high-value hit, +1 for any medium hit, max 10."""
    text = f"{title} {snippet}".lower()
    score = BASELINE_SCORE
    if _MONEY_RE.search(text) or any(p.search(text) for p in _HIGH_PATTERNS):
        score += HIGH_BONUS
    if any(p.search(text) for p in _MEDIUM_PATTERNS):
        score += MEDIUM_BONUS
    return min(score, MAX_SCORE)


def parse_score(raw: str | None) -> int | None:
    """Strip every non-digit; the remainder must be an integer in [1, 10]."""
    digits = re.sub(r'\D', '', raw or '')
    if not digits:
        return None
    score = int(digits)
    if MIN_SCORE <= score <= MAX_SCORE:
        return score
    return None


def build_llm_client(settings: Settings) -> OpenAI | None:
    """OpenRouter when configured, plain OpenAI otherwise, else None."""
    if settings.openrouter_api_key:
        logger.info(f"Scorer using OpenRouter ({settings.scorer_model})")
        return OpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            default_headers={'X-Title': 'Alfred Curator'},
        )
    if settings.openai_api_key:
        logger.info(f"Scorer using OpenAI ({settings.scorer_model})")
        return OpenAI(api_key=settings.openai_api_key)
    logger.warning("No LLM key configured — scoring will use keyword fallback only")
    return None


class SignalScorer:
    def __init__(self, client: OpenAI | None, model: str, timeout: float = 20.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> 'SignalScorer':
        return cls(build_llm_client(settings), settings.scorer_model, settings.scorer_timeout)

    def ask_llm(self, title: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(title=title)},
                ],
                temperature=0.1,
                max_tokens=10,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            raise TransientSourceError("scorer", str(e)) from e
        return response.choices[0].message.content or ''

    def score(self, item: FeedItem) -> ScoreResult:
        if self.client is None:
            return ScoreResult(score=keyword_score(item.title, item.snippet), method='keyword')

        raw = ''
        try:
            raw = self.ask_llm(item.title)
            parsed = parse_score(raw)
            if parsed is not None:
                return ScoreResult(score=parsed, method='llm', raw=raw)
            logger.warning(f"Unparseable score {raw!r} for '{item.title[:40]}' — using keyword fallback")
        except Exception as e:
            logger.warning(f"LLM scoring failed for '{item.title[:40]}': {e} — using keyword fallback")

        return ScoreResult(score=keyword_score(item.title, item.snippet), method='keyword', raw=raw)

    def probe(self, headline: str) -> dict:
        """Debug view of both scoring paths for a single headline."""
        result = {'headline': headline, 'fallback': keyword_score(headline)}
        if self.client is None:
            result['error'] = 'No LLM client configured'
            return result
        try:
            raw = self.ask_llm(headline)
        except Exception as e:
            result['error'] = str(e)
            return result
        result.update({'raw': raw, 'cleaned': re.sub(r'\D', '', raw), 'score': parse_score(raw)})
        return result
