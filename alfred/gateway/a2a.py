"""
Agent-to-agent task protocol.

JSON-RPC 2.0 ``tasks/send`` with ``params.task = {skill, input}``. Premium
skills go through the access gate; an agent that cannot hold a session
pays on-chain and resends the task with ``input.txHash``.
"""

import logging
from typing import Callable

from pydantic import BaseModel, ValidationError

from alfred import __version__
from alfred.errors import ChainRPCError, ConfigurationError
from alfred.gateway.schemas import A2ARequest, A2AResponse, A2AResult, AgentCard, SignalsInput, SkillCard
from alfred.payments.access import AccessGate, AccessRequest
from alfred.processor.curator import Curator

logger = logging.getLogger('gateway')

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000

SKILLS = [
    SkillCard(id='stats', description='Curator memory statistics'),
    SkillCard(id='signals', description='Scored news signals, highest first', premium=True),
    SkillCard(id='briefing', description='Ranked headline briefing from all feeds', premium=True),
    SkillCard(id='curate', description='Run a curation cycle now', premium=True),
]
PREMIUM_SKILLS = {s.id for s in SKILLS if s.premium}
SKILL_INPUTS: dict[str, type[BaseModel]] = {'signals': SignalsInput}


class TaskDispatcher:
    def __init__(self, curator: Curator, gate: AccessGate, news_cycle: Callable[[], dict]):
        self.curator = curator
        self.gate = gate
        self.news_cycle = news_cycle

    def agent_card(self) -> AgentCard:
        return AgentCard(version=__version__, skills=SKILLS, payment=self.gate.payments.payment_terms())

    def handle(self, request: A2ARequest, access: AccessRequest) -> A2AResponse:
        if request.method != 'tasks/send':
            return A2AResponse(id=request.id, error={'code': METHOD_NOT_FOUND,
                                                     'message': f'Unknown method: {request.method}'})
        if request.params is None:
            return A2AResponse(id=request.id, error={'code': INVALID_PARAMS,
                                                     'message': 'params.task is required'})

        task = request.params.task
        skill = task.skill
        if skill not in {s.id for s in SKILLS}:
            return A2AResponse(id=request.id, result=A2AResult(
                status='failed', skill=skill,
                message=f"Unknown skill: {skill}. Available: {', '.join(s.id for s in SKILLS)}",
            ))

        # bad arguments are rejected before any payment is checked
        args = None
        if skill in SKILL_INPUTS:
            try:
                args = SKILL_INPUTS[skill].model_validate(task.input)
            except ValidationError as e:
                return A2AResponse(id=request.id, error={'code': INVALID_PARAMS,
                                                         'message': f'Invalid input for {skill}: {e.errors()[0]["msg"]}'})

        if skill in PREMIUM_SKILLS:
            access.tx_hash = task.input.get('txHash') or access.tx_hash
            try:
                decision = self.gate.authorize(access)
            except (ChainRPCError, ConfigurationError) as e:
                logger.error(f"A2A {skill}: payment verification unavailable: {e}")
                return A2AResponse(id=request.id, error={'code': SERVER_ERROR, 'message': str(e)})
            if not decision.granted:
                return A2AResponse(id=request.id, result=A2AResult(
                    status='payment-required', skill=skill,
                    payment=decision.payment, message=decision.reason,
                ))
            logger.info(f"A2A {skill} granted via {decision.tier.value}")

        return A2AResponse(id=request.id, result=A2AResult(
            status='completed', skill=skill, data=self.run_skill(skill, args),
        ))

    def run_skill(self, skill: str, args: BaseModel | None = None) -> dict:
        if skill == 'stats':
            return self.curator.stats()

        if skill == 'signals':
            query = args or SignalsInput()
            if query.order == 'recent':
                signals = self.curator.store.recent_signals(query.limit)
            else:
                signals = self.curator.store.top_signals(query.limit, query.min_score)
            return {'count': len(signals), 'signals': [s.model_dump(by_alias=True) for s in signals]}

        if skill == 'briefing':
            return self.news_cycle()

        if skill == 'curate':
            result = self.curator.run_cycle()
            if result is None:
                return {'ok': True, 'ran': False, 'message': 'A cycle is already running'}
            return {'ok': True, 'ran': True, 'cycle': result.model_dump(by_alias=True)}

        raise ValueError(f"Unhandled skill: {skill}")
