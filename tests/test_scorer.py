"""
Scorer tests.

Tests:
- parse_score: digit stripping and the [1, 10] range
- keyword_score: baseline, high/medium bonuses, money amounts, cap
- SignalScorer: LLM path, fallback on timeout / junk / no client
- probe output

The OpenAI client is a MagicMock; no network calls.

Run with: pytest tests/test_scorer.py -v
"""
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError

from alfred.config import Settings
from alfred.errors import TransientSourceError
from alfred.processor import scorer as scorer_mod
from alfred.processor.scorer import SignalScorer, build_llm_client, keyword_score, parse_score
from helpers import make_item


def _llm_returning(content):
    client = MagicMock()
    message = MagicMock()
    message.content = content
    client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
    return client


class TestParseScore:
    @pytest.mark.parametrize("raw,expected", [
        ("7", 7),
        (" 8\n", 8),
        ("10", 10),
        ("Score: 9", 9),
        ("1.", 1),
    ])
    def test_valid(self, raw, expected):
        assert parse_score(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "high", "0", "11", "8/10"])
    def test_invalid(self, raw):
        assert parse_score(raw) is None


class TestKeywordScore:
    def test_baseline(self):
        assert keyword_score("Local bakery opens second shop") == 5

    def test_high_keywords_add_two_once(self):
        # etf and approved are both high-value; the bonus is applied once
        assert keyword_score("Major Exchange ETF Approved") == 7

    def test_medium_keyword_adds_one(self):
        assert keyword_score("Protocol announces mainnet date") == 6

    def test_high_and_medium(self):
        assert keyword_score("Ethereum upgrade ships") == 8

    def test_money_amount_counts_as_high(self):
        assert keyword_score("Fund closes at $2.5B") == 7

    def test_snippet_is_considered(self):
        assert keyword_score("Quiet headline", "the SEC weighed in") == 7

    def test_matches_whole_words_only(self):
        # 'sec' inside 'second' is not a hit
        assert keyword_score("Second coffee shop opens") == 5


class TestSignalScorer:
    def test_llm_score_used(self):
        scorer = SignalScorer(_llm_returning("9"), model="m")
        result = scorer.score(make_item("Anything"))
        assert result.score == 9
        assert result.method == "llm"

    def test_request_shape(self):
        client = _llm_returning("6")
        SignalScorer(client, model="m", timeout=3).score(make_item("Bitcoin dips"))
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["timeout"] == 3
        assert kwargs["max_tokens"] == 10
        assert "Bitcoin dips" in kwargs["messages"][1]["content"]

    def test_fallback_on_timeout(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = TimeoutError("scorer timed out")
        result = SignalScorer(client, model="m").score(make_item("Major Exchange ETF Approved"))
        assert result.score == 7
        assert result.method == "keyword"

    def test_client_errors_become_transient(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions"))
        scorer = SignalScorer(client, model="m")
        with pytest.raises(TransientSourceError):
            scorer.ask_llm("Anything")
        assert scorer.score(make_item("Anything")).method == "keyword"

    def test_fallback_on_unparseable_reply(self):
        scorer = SignalScorer(_llm_returning("I think it's important"), model="m")
        result = scorer.score(make_item("Major Exchange ETF Approved"))
        assert result.score == 7
        assert result.method == "keyword"
        assert result.raw == "I think it's important"

    def test_no_client_uses_keywords(self):
        result = SignalScorer(None, model="m").score(make_item("Local bakery opens"))
        assert result.score == 5
        assert result.method == "keyword"

    def test_probe(self):
        probe = SignalScorer(_llm_returning(" 8 "), model="m").probe("Bitcoin ETF approved")
        assert probe["score"] == 8
        assert probe["cleaned"] == "8"
        assert probe["fallback"] == 7

    def test_probe_without_client(self):
        probe = SignalScorer(None, model="m").probe("Anything")
        assert probe["error"] == "No LLM client configured"
        assert probe["fallback"] == 5


class TestBuildClient:
    def test_none_without_keys(self):
        assert build_llm_client(Settings()) is None

    def test_openrouter_preferred(self, monkeypatch):
        created = MagicMock()
        monkeypatch.setattr(scorer_mod, "OpenAI", created)
        build_llm_client(Settings(openrouter_api_key="or-key", openai_api_key="oa-key"))
        kwargs = created.call_args.kwargs
        assert kwargs["api_key"] == "or-key"
        assert kwargs["base_url"] == "https://openrouter.ai/api/v1"

    def test_openai_when_no_openrouter(self, monkeypatch):
        created = MagicMock()
        monkeypatch.setattr(scorer_mod, "OpenAI", created)
        build_llm_client(Settings(openai_api_key="oa-key"))
        assert created.call_args.kwargs == {"api_key": "oa-key"}
