"""
Service configuration and logging setup.

All settings come from the process environment (after .env is loaded) and
are materialized once into a Settings object that is passed explicitly to
every component. Optional credentials never fail at startup; the operation
that needs them raises ConfigurationError instead.
"""

import logging
import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_RSS_FEEDS = {
    'CoinDesk': 'https://www.coindesk.com/arc/outboundfeeds/rss/',
    'Blockworks': 'https://blockworks.co/feed',
    'Decrypt': 'https://decrypt.co/feed',
    'The Block': 'https://www.theblock.co/rss.xml',
    'CoinTelegraph': 'https://cointelegraph.com/rss',
    'TechCrunch': 'https://techcrunch.com/feed/',
}

DEFAULT_X_QUERY = '(ethereum OR bitcoin OR eigenlayer OR restaking) -is:retweet lang:en'
DEFAULT_RPC_URL = 'https://ethereum-sepolia-rpc.publicnode.com'
OPENROUTER_BASE_URL = 'https://openrouter.ai/api/v1'

LOG_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'


class Settings(BaseModel):
    data_dir: Path = Path('data')
    log_dir: Path | None = None

    # Ingestion
    rss_feeds: dict[str, str] = dict(DEFAULT_RSS_FEEDS)
    feed_timeout: float = 10.0
    hn_story_count: int = 15
    hn_item_timeout: float = 5.0
    x_bearer_token: str | None = None
    x_search_query: str = DEFAULT_X_QUERY
    x_max_results: int = 20
    briefing_max_age_hours: float = 8.0
    briefing_top_n: int = 10

    # Scoring
    openrouter_api_key: str | None = None
    openrouter_base_url: str = OPENROUTER_BASE_URL
    openai_api_key: str | None = None
    scorer_model: str = 'meta-llama/llama-3-8b-instruct:free'
    scorer_timeout: float = 20.0
    score_delay: float = 2.0

    # Cycle / memory
    max_scores_per_cycle: int = 10
    max_history: int = 200
    cycle_interval_minutes: int = 240
    signal_alert_threshold: int = 8

    # Payments
    payment_wallet: str | None = None
    min_payment_eth: Decimal = Field(Decimal('0.001'), gt=0)
    chain_rpc_url: str = DEFAULT_RPC_URL
    chain_rpc_timeout: float = 10.0
    payment_network: str = 'Sepolia'
    chain_id: int = 11155111
    nonce_ttl: int = 5 * 60
    session_ttl: int = 24 * 60 * 60
    telegram_payment_ttl: int = 24 * 60 * 60
    beta_invite_code: str = 'ALFRED-v1'
    beta_max_uses: int = 15

    # Gateway
    api_token: str | None = None
    trust_loopback: bool = True
    host: str = '0.0.0.0'
    port: int = 3001

    # Key-value backend
    kv_backend: str = 'memory'
    supabase_url: str | None = None
    supabase_key: str | None = None
    kv_table: str = 'kv_store'

    # Delivery
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None

    @property
    def memory_file(self) -> Path:
        return self.data_dir / 'curator_memory.json'

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir or self.data_dir / 'logs'

    @property
    def network_label(self) -> str:
        return f"{self.payment_network} (chainId {self.chain_id})"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> 'Settings':
        """Build settings from the environment, loading .env first."""
        load_dotenv(env_file)
        env = os.environ
        values = {
            'data_dir': env.get('ALFRED_DATA_DIR'),
            'log_dir': env.get('ALFRED_LOG_DIR'),
            'rss_feeds': parse_feed_list(env.get('RSS_FEEDS')),
            'feed_timeout': env.get('FEED_TIMEOUT_SECONDS'),
            'hn_story_count': env.get('HN_STORY_COUNT'),
            'hn_item_timeout': env.get('HN_ITEM_TIMEOUT_SECONDS'),
            'x_bearer_token': env.get('X_BEARER_TOKEN'),
            'x_search_query': env.get('X_SEARCH_QUERY'),
            'x_max_results': env.get('X_MAX_RESULTS'),
            'briefing_max_age_hours': env.get('BRIEFING_MAX_AGE_HOURS'),
            'briefing_top_n': env.get('BRIEFING_TOP_N'),
            'openrouter_api_key': env.get('OPENROUTER_API_KEY'),
            'openrouter_base_url': env.get('OPENROUTER_BASE_URL'),
            'openai_api_key': env.get('OPENAI_API_KEY'),
            'scorer_model': env.get('SCORER_MODEL') or env.get('OPENROUTER_MODEL'),
            'scorer_timeout': env.get('SCORER_TIMEOUT_SECONDS'),
            'score_delay': env.get('SCORE_DELAY_SECONDS'),
            'max_scores_per_cycle': env.get('MAX_SCORES_PER_CYCLE'),
            'max_history': env.get('MAX_HISTORY'),
            'cycle_interval_minutes': env.get('CYCLE_INTERVAL_MINUTES'),
            'signal_alert_threshold': env.get('SIGNAL_ALERT_THRESHOLD'),
            'payment_wallet': env.get('PAYMENT_WALLET') or env.get('WALLET_ADDRESS'),
            'min_payment_eth': env.get('MIN_PAYMENT_ETH'),
            'chain_rpc_url': env.get('CHAIN_RPC_URL') or env.get('SEPOLIA_RPC'),
            'chain_rpc_timeout': env.get('CHAIN_RPC_TIMEOUT_SECONDS'),
            'payment_network': env.get('PAYMENT_NETWORK'),
            'chain_id': env.get('CHAIN_ID'),
            'nonce_ttl': env.get('NONCE_TTL_SECONDS'),
            'session_ttl': env.get('SESSION_TTL_SECONDS'),
            'telegram_payment_ttl': env.get('TELEGRAM_PAYMENT_TTL_SECONDS'),
            'beta_invite_code': env.get('BETA_INVITE_CODE'),
            'beta_max_uses': env.get('BETA_MAX_USES'),
            'api_token': env.get('API_TOKEN') or env.get('OPENCLAW_GATEWAY_TOKEN'),
            'trust_loopback': env.get('TRUST_LOOPBACK'),
            'host': env.get('HOST'),
            'port': env.get('PORT'),
            'kv_backend': env.get('KV_BACKEND'),
            'supabase_url': env.get('SUPABASE_URL'),
            'supabase_key': env.get('SUPABASE_SERVICE_KEY') or env.get('SUPABASE_KEY'),
            'kv_table': env.get('KV_TABLE'),
            'telegram_bot_token': env.get('TELEGRAM_BOT_TOKEN'),
            'telegram_chat_id': env.get('TELEGRAM_CHAT_ID'),
        }
        # Unset or empty variables fall back to the model defaults
        return cls.model_validate({k: v for k, v in values.items() if v not in (None, '')})


def parse_feed_list(raw: str | None) -> dict[str, str] | None:
    """Parse ``Name|url,Name|url``. A bare url is named after its host."""
    if not raw:
        return None
    feeds = {}
    for entry in raw.split(','):
        entry = entry.strip()
        if not entry:
            continue
        if '|' in entry:
            name, url = entry.split('|', 1)
        else:
            url = entry
            name = url.split('//', 1)[-1].split('/', 1)[0]
        feeds[name.strip()] = url.strip()
    return feeds or None


def setup_logging(settings: Settings, level: int = logging.INFO) -> logging.Logger:
    """Configure root logging to stderr plus a file under the log dir."""
    log_dir = settings.resolved_log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / 'curator.log'),
        ],
    )
    return logging.getLogger('curator')
