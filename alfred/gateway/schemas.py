"""Pydantic schemas for the gateway — request bodies and A2A envelopes."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerifyRequest(CamelModel):
    address: str
    signature: str


class TelegramVerifyRequest(CamelModel):
    chat_id: str
    tx_hash: str | None = None


class BetaRedeemRequest(CamelModel):
    chat_id: str
    code: str


class A2ATask(BaseModel):
    skill: str
    input: dict[str, Any] = {}


MAX_SIGNALS_LIMIT = 200


class SignalsInput(CamelModel):
    """Arguments of the signals query, shared by the HTTP route and the A2A skill."""
    limit: int = Field(20, ge=1, le=MAX_SIGNALS_LIMIT)
    min_score: int = Field(0, ge=0, le=10)
    order: Literal["score", "recent"] = "score"


class A2AParams(BaseModel):
    task: A2ATask


class A2ARequest(BaseModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    method: str
    params: A2AParams | None = None


class A2AResult(BaseModel):
    status: Literal["completed", "payment-required", "failed"]
    skill: str
    data: dict[str, Any] | None = None
    payment: dict[str, Any] | None = None
    message: str | None = None


class A2AResponse(BaseModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: A2AResult | None = None
    error: dict[str, Any] | None = None


class SkillCard(BaseModel):
    id: str
    description: str
    premium: bool = False


class AgentCard(BaseModel):
    name: str = "Alfred Curator"
    description: str = (
        "Information curator agent: scores crypto/tech news signals from RSS, "
        "Hacker News and X."
    )
    version: str
    skills: list[SkillCard] = Field(default_factory=list)
    payment: dict[str, Any] = {}
    protocol: str = "a2a/jsonrpc-2.0"
