"""FastAPI surface over an in-process venue. Caller identity comes from the X-Account header."""

from __future__ import annotations

import functools
import threading
from contextlib import asynccontextmanager
from typing import Any, Callable, TypeVar

import structlog
from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predamm.amm.engine import MarketEngine
from predamm.api.schemas import (
    AddLiquidityRequest,
    AddLiquidityResponse,
    ApprovalRequest,
    BalancesResponse,
    ClaimResponse,
    CreateMarketRequest,
    ErrorResponse,
    FaucetRequest,
    HealthResponse,
    LpPositionResponse,
    MarketResponse,
    MarketsListResponse,
    RedeemRequest,
    RedeemResponse,
    RemoveLiquidityRequest,
    RemoveLiquidityResponse,
    ResolveRequest,
    TradeRequest,
    TradeResponse,
    TradesResponse,
)
from predamm.config import get_settings
from predamm.errors import (
    AlreadyExistsError,
    MarketError,
    NotFoundError,
    NotResolvedError,
    ReentrancyError,
    SlippageExceededError,
    UnauthorizedError,
)
from predamm.events import EventRecorder, FanoutSink
from predamm.ids import NO, NULL_COLLECTION, YES
from predamm.venue import Venue

log = structlog.get_logger(__name__)

OUTCOMES = {"YES": YES, "NO": NO}
OUTCOME_NAMES = {YES: "YES", NO: "NO"}

F = TypeVar("F", bound=Callable[..., Any])

# Set by run_api() before the server starts.
_config_profile: str | None = None
_persist_events = False
_venue: Venue | None = None
# Sync handlers run on the threadpool; the venue is one serialization point.
_venue_lock = threading.Lock()


def get_venue() -> Venue:
    global _venue
    if _venue is None:
        _venue = Venue.from_settings(get_settings(_config_profile))
    return _venue


def set_venue(venue: Venue | None) -> None:
    """Replace the served venue (tests, embedding)."""
    global _venue
    with _venue_lock:
        _venue = venue


def serialized(handler: F) -> F:
    """Run a handler with exclusive access to the venue."""

    @functools.wraps(handler)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with _venue_lock:
            return handler(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


@asynccontextmanager
async def lifespan(app: FastAPI):
    conn = None
    store = None
    if _persist_events:
        from predamm.storage.db import get_connection, init_schema
        from predamm.storage.event_log import DuckDBEventStore

        settings = get_settings(_config_profile)
        conn = get_connection(settings.db_path)
        init_schema(conn)
        store = DuckDBEventStore(conn)
        set_venue(Venue.from_settings(settings, sink=FanoutSink(EventRecorder(), store)))
    yield
    if store is not None:
        store.flush()
    if conn is not None:
        conn.close()


app = FastAPI(title="predamm API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _status_for(exc: MarketError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, UnauthorizedError):
        return 403
    if isinstance(exc, (AlreadyExistsError, NotResolvedError, ReentrancyError, SlippageExceededError)):
        return 409
    return 400


@app.exception_handler(MarketError)
async def _market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    status = _status_for(exc)
    log.warning("operation_rejected", path=request.url.path, code=exc.code, detail=exc.message, status=status)
    return _error_json(exc.code, exc.message, status)


def _market_response(venue: Venue, engine: MarketEngine) -> MarketResponse:
    yes_bps, no_bps = engine.get_current_prices()
    return MarketResponse(
        condition_id=engine.condition_id,
        question_id=venue.registry.question_of(engine.condition_id),
        engine=engine.address,
        yes_position_id=engine.yes_position_id,
        no_position_id=engine.no_position_id,
        reserve_yes=engine.reserve_yes,
        reserve_no=engine.reserve_no,
        yes_price_bps=yes_bps,
        no_price_bps=no_bps,
        pool_value=engine.get_total_pool_value(),
        lp_total_supply=engine.lp_total_supply,
        total_volume=engine.total_volume,
        trade_count=engine.get_trade_history_count(),
        trading_fee_bps=engine.trading_fee_bps,
        lp_fee_bps=engine.lp_fee_bps,
        resolved=engine.resolved,
        winning_outcome=OUTCOME_NAMES.get(engine.winning_outcome) if engine.winning_outcome else None,
    )


_ERRORS = {404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@app.get("/health", response_model=HealthResponse)
@serialized
def health() -> HealthResponse:
    return HealthResponse(markets=len(get_venue().registry.markets()))


# --- Accounts ---
@app.post("/faucet", response_model=BalancesResponse, responses=_ERRORS)
@serialized
def faucet(body: FaucetRequest) -> BalancesResponse:
    """Mint test collateral to an account."""
    venue = get_venue()
    venue.fund(body.account, body.amount)
    return BalancesResponse(account=body.account, collateral=venue.collateral.balance_of(body.account))


@app.post("/approvals", status_code=204, responses=_ERRORS)
@serialized
def approve(body: ApprovalRequest, x_account: str = Header(...)) -> None:
    """Approve an engine to pull the caller's collateral and positions."""
    get_venue().approve_market(x_account, body.engine)


@app.get("/accounts/{account}/balances", response_model=BalancesResponse, responses=_ERRORS)
@serialized
def balances(account: str, condition_id: str | None = Query(None)) -> BalancesResponse:
    venue = get_venue()
    resp = BalancesResponse(account=account, collateral=venue.collateral.balance_of(account))
    if condition_id:
        engine = venue.registry.get_market(condition_id)
        resp.yes = venue.ledger.balance_of(account, engine.yes_position_id)
        resp.no = venue.ledger.balance_of(account, engine.no_position_id)
        resp.lp_shares = engine.lp_balance_of(account)
    return resp


# --- Markets ---
@app.post("/markets", response_model=MarketResponse, status_code=201, responses=_ERRORS)
@serialized
def create_market(body: CreateMarketRequest, x_account: str = Header(...)) -> MarketResponse:
    venue = get_venue()
    settings = get_settings(_config_profile)
    engine = venue.registry.create_market(
        x_account,
        body.question_id,
        settings.default_trading_fee_bps if body.trading_fee_bps is None else body.trading_fee_bps,
        settings.default_lp_fee_bps if body.lp_fee_bps is None else body.lp_fee_bps,
        body.fee_recipient,
    )
    return _market_response(venue, engine)


@app.get("/markets", response_model=MarketsListResponse)
@serialized
def list_markets() -> MarketsListResponse:
    venue = get_venue()
    items = [_market_response(venue, e) for e in venue.registry.markets()]
    return MarketsListResponse(markets=items, total=len(items))


@app.get("/markets/{condition_id}", response_model=MarketResponse, responses=_ERRORS)
@serialized
def market_detail(condition_id: str) -> MarketResponse:
    venue = get_venue()
    return _market_response(venue, venue.registry.get_market(condition_id))


@app.get("/markets/{condition_id}/trades", response_model=TradesResponse, responses=_ERRORS)
@serialized
def market_trades(
    condition_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> TradesResponse:
    engine = get_venue().registry.get_market(condition_id)
    return TradesResponse(
        condition_id=engine.condition_id,
        trades=engine.trades(offset, limit),
        total=engine.get_trade_history_count(),
    )


@app.get("/markets/{condition_id}/lp/{provider}", response_model=LpPositionResponse, responses=_ERRORS)
@serialized
def lp_position(condition_id: str, provider: str) -> LpPositionResponse:
    pos = get_venue().registry.get_market(condition_id).get_lp_position(provider)
    return LpPositionResponse(**pos.model_dump())


# --- Liquidity ---
@app.post("/markets/{condition_id}/liquidity", response_model=AddLiquidityResponse, responses=_ERRORS)
@serialized
def add_liquidity(condition_id: str, body: AddLiquidityRequest, x_account: str = Header(...)) -> AddLiquidityResponse:
    engine = get_venue().registry.get_market(condition_id)
    return AddLiquidityResponse(shares=engine.add_liquidity(x_account, body.amount))


@app.post("/markets/{condition_id}/liquidity/remove", response_model=RemoveLiquidityResponse, responses=_ERRORS)
@serialized
def remove_liquidity(
    condition_id: str, body: RemoveLiquidityRequest, x_account: str = Header(...)
) -> RemoveLiquidityResponse:
    engine = get_venue().registry.get_market(condition_id)
    return RemoveLiquidityResponse(collateral_out=engine.remove_liquidity(x_account, body.shares))


# --- Trading ---
@app.post("/markets/{condition_id}/swap", response_model=TradeResponse, responses=_ERRORS)
@serialized
def swap(condition_id: str, body: TradeRequest, x_account: str = Header(...)) -> TradeResponse:
    engine = get_venue().registry.get_market(condition_id)
    out = engine.swap(x_account, body.amount_in, OUTCOMES[body.outcome], body.min_amount_out)
    return TradeResponse(side="BUY", outcome=body.outcome, amount_in=body.amount_in, amount_out=out)


@app.post("/markets/{condition_id}/sell", response_model=TradeResponse, responses=_ERRORS)
@serialized
def sell(condition_id: str, body: TradeRequest, x_account: str = Header(...)) -> TradeResponse:
    engine = get_venue().registry.get_market(condition_id)
    out = engine.sell(x_account, body.amount_in, OUTCOMES[body.outcome], body.min_amount_out)
    return TradeResponse(side="SELL", outcome=body.outcome, amount_in=body.amount_in, amount_out=out)


# --- Settlement ---
@app.post("/markets/{condition_id}/resolve", response_model=MarketResponse, responses=_ERRORS)
@serialized
def resolve(condition_id: str, body: ResolveRequest, x_account: str = Header(...)) -> MarketResponse:
    venue = get_venue()
    engine = venue.registry.get_market(condition_id)
    venue.registry.resolve_market(x_account, venue.registry.question_of(condition_id), OUTCOMES[body.winning_outcome])
    return _market_response(venue, engine)


@app.post("/markets/{condition_id}/claim", response_model=ClaimResponse, responses=_ERRORS)
@serialized
def claim(condition_id: str, x_account: str = Header(...)) -> ClaimResponse:
    engine = get_venue().registry.get_market(condition_id)
    tokens, cash = engine.claim_lp_winnings(x_account)
    return ClaimResponse(winning_tokens=tokens, collateral=cash)


@app.post("/markets/{condition_id}/redeem", response_model=RedeemResponse, responses=_ERRORS)
@serialized
def redeem(condition_id: str, body: RedeemRequest, x_account: str = Header(...)) -> RedeemResponse:
    venue = get_venue()
    engine = venue.registry.get_market(condition_id)
    gross = venue.ledger.redeem_positions(
        x_account, x_account, venue.collateral, NULL_COLLECTION, engine.condition_id, body.index_sets
    )
    return RedeemResponse(gross_payout=gross)


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
    persist: bool = False,
) -> None:
    global _config_profile, _persist_events
    _config_profile = profile
    _persist_events = persist
    import uvicorn

    uvicorn.run("predamm.api.main:app", host=host, port=port, reload=False)
