"""
HTTP gateway.

Endpoints:
    GET  /health                  - liveness + memory counts (open)
    GET  /.well-known/agent.json  - A2A agent card (open)
    GET  /auth/nonce              - sign-in challenge for a wallet
    POST /auth/verify             - signature → session token
    GET  /auth/status             - session payment status (optional txHash)
    GET  /telegram/status         - chat-id payment status
    POST /telegram/verify         - chat-id payment by txHash
    POST /telegram/redeem         - beta invite redemption
    GET  /api/signals             - scored signals, by score or ?order=recent (gated)
    GET  /api/briefing            - ranked headline briefing (gated)
    GET  /api/stats               - curator stats (gated)
    GET  /api/test-score          - score probe for one headline (gated)
    POST /api/curate              - run a cycle now (gated)
    POST /api/reset               - clear seen hashes (gated)
    POST /a2a                     - JSON-RPC tasks/send
"""

import logging
import time
from typing import Callable, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from alfred import __version__
from alfred.errors import AuthError, ChainRPCError, ConfigurationError
from alfred.gateway.a2a import TaskDispatcher
from alfred.gateway.schemas import (
    MAX_SIGNALS_LIMIT,
    A2ARequest,
    BetaRedeemRequest,
    TelegramVerifyRequest,
    VerifyRequest,
)
from alfred.payments.access import AccessDecision, AccessGate, AccessRequest
from alfred.payments.service import PaymentService
from alfred.processor.curator import Curator
from alfred.processor.scorer import SignalScorer

logger = logging.getLogger('gateway')

SESSION_HEADER = 'x-session-token'
PAYMENT_TX_HEADER = 'x-payment-tx'

DEFAULT_HEADLINE = 'Bitcoin falls to $68,000 as crypto market drowns in red'


def access_request(request: Request) -> AccessRequest:
    auth = request.headers.get('authorization', '')
    bearer = auth[7:].strip() if auth.lower().startswith('bearer ') else None
    return AccessRequest(
        client_host=request.client.host if request.client else None,
        bearer_token=bearer or request.query_params.get('token'),
        session_token=request.headers.get(SESSION_HEADER),
        tx_hash=request.query_params.get('txHash') or request.headers.get(PAYMENT_TX_HEADER),
    )


def _dump(model) -> dict:
    return model.model_dump(mode='json', by_alias=True, exclude_none=True)


def create_app(
    curator: Curator,
    payments: PaymentService,
    gate: AccessGate,
    news_cycle: Callable[[], dict],
    scorer: SignalScorer | None = None,
) -> FastAPI:
    app = FastAPI(title='Alfred Curator', version=__version__)
    dispatcher = TaskDispatcher(curator, gate, news_cycle)
    started = time.time()

    app.state.curator = curator
    app.state.payments = payments
    app.state.gate = gate

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @app.exception_handler(AuthError)
    async def _auth_error(request: Request, exc: AuthError):
        return JSONResponse(status_code=401, content={'error': str(exc), 'code': exc.code})

    @app.exception_handler(ConfigurationError)
    async def _config_error(request: Request, exc: ConfigurationError):
        logger.error(f"{request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={'error': str(exc)})

    @app.exception_handler(ChainRPCError)
    async def _chain_error(request: Request, exc: ChainRPCError):
        return JSONResponse(status_code=502, content={'error': str(exc), 'reason': exc.reason})

    def require_access(request: Request) -> AccessDecision:
        decision = gate.authorize(access_request(request))
        if not decision.granted:
            status_code = 402 if decision.payment else 401
            raise HTTPException(status_code=status_code,
                                detail={'error': decision.reason, 'payment': decision.payment})
        return decision

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    @app.get('/health')
    def health():
        return {
            'status': 'running',
            'uptime': round(time.time() - started, 1),
            **curator.store.stats(),
        }

    @app.get('/.well-known/agent.json')
    def agent_card():
        return dispatcher.agent_card().model_dump()

    # ------------------------------------------------------------------
    # Wallet sign-in and payment
    # ------------------------------------------------------------------

    @app.get('/auth/nonce')
    def auth_nonce(address: str = Query(...)):
        return _dump(payments.get_nonce(address))

    @app.post('/auth/verify')
    def auth_verify(body: VerifyRequest):
        return _dump(payments.verify_signature(body.address, body.signature))

    @app.get('/auth/status')
    def auth_status(request: Request, tx_hash: str | None = Query(None, alias='txHash')):
        token = request.headers.get(SESSION_HEADER)
        if not token:
            raise AuthError('Missing session token', code='session_invalid')
        return _dump(payments.check_payment(token, tx_hash))

    @app.get('/telegram/status')
    def telegram_status(chat_id: str = Query(..., alias='chatId')):
        return _dump(payments.is_telegram_paid(chat_id))

    @app.post('/telegram/verify')
    def telegram_verify(body: TelegramVerifyRequest):
        return _dump(payments.verify_telegram_payment(body.chat_id, body.tx_hash))

    @app.post('/telegram/redeem')
    def telegram_redeem(body: BetaRedeemRequest):
        return _dump(payments.redeem_beta_code(body.chat_id, body.code))

    # ------------------------------------------------------------------
    # Gated curator data
    # ------------------------------------------------------------------

    @app.get('/api/signals')
    def signals(limit: int = Query(20, ge=1, le=MAX_SIGNALS_LIMIT),
                min_score: int = Query(0, ge=0, le=10, alias='minScore'),
                order: Literal['score', 'recent'] = 'score',
                decision: AccessDecision = Depends(require_access)):
        if order == 'recent':
            items = curator.store.recent_signals(limit)
        else:
            items = curator.store.top_signals(limit, min_score)
        return {'count': len(items), 'signals': [s.model_dump(by_alias=True) for s in items],
                'access': decision.tier.value}

    @app.get('/api/briefing')
    def briefing(decision: AccessDecision = Depends(require_access)):
        return news_cycle()

    @app.get('/api/stats')
    def stats(decision: AccessDecision = Depends(require_access)):
        return curator.stats()

    @app.get('/api/test-score')
    def test_score(headline: str = DEFAULT_HEADLINE,
                   decision: AccessDecision = Depends(require_access)):
        probe = scorer or curator.scorer
        return probe.probe(headline)

    @app.post('/api/curate')
    def curate(decision: AccessDecision = Depends(require_access)):
        result = curator.run_cycle()
        if result is None:
            return {'ok': True, 'ran': False, 'message': 'A cycle is already running'}
        return {'ok': True, 'ran': True, 'cycle': result.model_dump(by_alias=True),
                'stats': curator.describe()}

    @app.post('/api/reset')
    def reset(keep_signals: bool = Query(True, alias='keepSignals'),
              decision: AccessDecision = Depends(require_access)):
        cleared = curator.reset(keep_signals=keep_signals)
        if cleared is None:
            return JSONResponse(status_code=409, content={
                'ok': False, 'message': 'A curation cycle is running. Try again when it finishes.'})
        return {'ok': True, 'cleared': cleared,
                'message': 'Memory reset. Next curation cycle will re-score all items.'}

    # ------------------------------------------------------------------
    # Agent-to-agent
    # ------------------------------------------------------------------

    @app.post('/a2a')
    def a2a(body: A2ARequest, request: Request):
        response = dispatcher.handle(body, access_request(request))
        return response.model_dump(exclude_none=True)

    return app
