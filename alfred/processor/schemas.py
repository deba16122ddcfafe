"""Pydantic schemas for the curator — feed items, signals and persisted memory."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedItem(CamelModel):
    title: str
    link: str = ""
    source: str
    published_at: str | None = None
    snippet: str = ""
    author: str | None = None
    points: int = 0


class SignalRecord(CamelModel):
    title: str
    link: str = ""
    source: str = ""
    score: int = Field(ge=1, le=10)
    timestamp: str


class CuratorMemory(CamelModel):
    seen_hashes: list[str] = []
    high_signals: list[SignalRecord] = []


class ScoreResult(BaseModel):
    score: int = Field(ge=1, le=10)
    method: Literal["llm", "keyword"]
    raw: str = ""


class CycleResult(CamelModel):
    started_at: str
    fetched: int = 0
    new_items: int = 0
    scored: int = 0
    deferred: int = 0
    llm_scored: int = 0
    high_signals: int = 0
    seen_total: int = 0
    persisted: bool = False
    duration_seconds: float = 0.0
