#!/usr/bin/env python3
"""
Alfred Curator service entry point.

Builds every component once from Settings and hands the instances to
their consumers. Modes:
- curate:   run one curation cycle and print the result
- briefing: print a ranked headline briefing
- stats:    print memory statistics
- serve:    HTTP gateway only
- watch:    initial cycle, scheduled cycles, signal delivery and the gateway
"""

import argparse
import json
import logging
import sys
import threading
import time
from dataclasses import dataclass

import httpx
import schedule
import uvicorn
from supabase import create_client

from alfred.config import Settings, setup_logging
from alfred.errors import ConfigurationError
from alfred.gateway.app import create_app
from alfred.payments.access import AccessGate
from alfred.payments.chain import ChainReader
from alfred.payments.kv_store import KVStore, MemoryKVStore, SupabaseKVStore
from alfred.payments.service import PaymentService
from alfred.processor.aggregator import aggregate_all
from alfred.processor.briefing import run_news_cycle
from alfred.processor.channel import SignalChannel, TelegramDelivery
from alfred.processor.curator import Curator
from alfred.processor.memory import MemoryStore
from alfred.processor.scorer import SignalScorer

logger = logging.getLogger('curator')


@dataclass
class Services:
    settings: Settings
    http: httpx.Client
    curator: Curator
    channel: SignalChannel
    delivery: TelegramDelivery
    payments: PaymentService
    gate: AccessGate

    def news_cycle(self) -> dict:
        return run_news_cycle(
            lambda: aggregate_all(self.http, self.settings, self.settings.briefing_max_age_hours),
            self.settings.briefing_top_n,
        )


def build_kv_store(settings: Settings) -> KVStore:
    if settings.kv_backend == 'supabase':
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError('KV_BACKEND=supabase needs SUPABASE_URL and SUPABASE_KEY')
        logger.info(f"KV store: Supabase table '{settings.kv_table}'")
        return SupabaseKVStore(create_client(settings.supabase_url, settings.supabase_key),
                               table=settings.kv_table)
    logger.info("KV store: in-memory (sessions reset on restart)")
    return MemoryKVStore()


def build_services(settings: Settings) -> Services:
    http = httpx.Client(timeout=settings.feed_timeout, headers={'User-Agent': 'AlfredCurator/1.0'})
    channel = SignalChannel()
    delivery = TelegramDelivery(channel, settings.telegram_bot_token, settings.telegram_chat_id,
                                threshold=settings.signal_alert_threshold)
    if not delivery.enabled:
        logger.info("Telegram delivery not configured — signals stay in memory only")
    store = MemoryStore(settings.memory_file, max_history=settings.max_history)
    curator = Curator(
        store=store,
        scorer=SignalScorer.from_settings(settings),
        fetch_items=lambda: aggregate_all(http, settings),
        # nothing drains the channel without delivery
        channel=channel if delivery.enabled else None,
        max_scores_per_cycle=settings.max_scores_per_cycle,
        score_delay=settings.score_delay,
        alert_threshold=settings.signal_alert_threshold,
        feed_count=len(settings.rss_feeds),
        interval_minutes=settings.cycle_interval_minutes,
    )
    payments = PaymentService(
        kv=build_kv_store(settings),
        chain=ChainReader(settings.chain_rpc_url, timeout=settings.chain_rpc_timeout),
        settings=settings,
    )
    gate = AccessGate(payments, api_token=settings.api_token, trust_loopback=settings.trust_loopback)
    return Services(settings, http, curator, channel, delivery, payments, gate)


# ============================================================================
# Scheduling
# ============================================================================

def scheduled_cycle(services: Services):
    try:
        services.curator.run_cycle()
    except Exception as e:
        logger.error(f"Scheduled cycle failed: {e}", exc_info=True)


def setup_scheduler(services: Services):
    interval = services.settings.cycle_interval_minutes
    schedule.every(interval).minutes.do(scheduled_cycle, services)
    schedule.every(1).hours.do(services.payments.cleanup)
    logger.info(f"Scheduler configured: curation every {interval} min, KV cleanup hourly")


def run_scheduler():
    while True:
        schedule.run_pending()
        time.sleep(30)


def start_delivery(services: Services):
    if services.delivery.enabled:
        threading.Thread(target=services.delivery.run, name='signal-delivery', daemon=True).start()


def serve(services: Services):
    app = create_app(services.curator, services.payments, services.gate,
                     services.news_cycle, services.curator.scorer)
    uvicorn.run(app, host=services.settings.host, port=services.settings.port, log_level='info')


# ============================================================================
# Main
# ============================================================================

def main():
    parser = argparse.ArgumentParser(description='Alfred Curator')
    parser.add_argument('--task', choices=['curate', 'briefing', 'stats', 'serve', 'watch'],
                        default='watch', help='Task to run')
    parser.add_argument('--env-file', default=None, help='Path to a .env file')
    args = parser.parse_args()

    settings = Settings.from_env(args.env_file)
    setup_logging(settings)
    services = build_services(settings)

    if args.task == 'curate':
        result = services.curator.run_cycle()
        print(json.dumps(result.model_dump(by_alias=True) if result else {'ran': False}, indent=2))

    elif args.task == 'briefing':
        print(services.news_cycle()['briefing'])

    elif args.task == 'stats':
        print(json.dumps(services.curator.stats(), indent=2, default=str))

    elif args.task == 'serve':
        start_delivery(services)
        serve(services)

    elif args.task == 'watch':
        logger.info("--- CURATOR SERVICE STARTUP ---")
        logger.info(f"API: {settings.host}:{settings.port} | interval: {settings.cycle_interval_minutes} min")

        start_delivery(services)

        logger.info("Running initial curation cycle...")
        scheduled_cycle(services)

        setup_scheduler(services)
        threading.Thread(target=run_scheduler, name='scheduler', daemon=True).start()
        serve(services)

    else:
        print(f"Unknown task: {args.task}")
        sys.exit(1)


if __name__ == '__main__':
    main()
