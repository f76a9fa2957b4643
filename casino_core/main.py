import logging
from contextlib import asynccontextmanager

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from casino_core.db import create_engine, create_session_factory, create_tables
from casino_core.domain.rng import DemoRNG, SecureRNG
from casino_core.exceptions import CasinoError
from casino_core.load_secrets import (
    demo_rng_enabled,
    geo_service_url,
    geo_timeout_seconds,
    guest_reset_hours,
    hit_soft_17,
    ledger_backend,
    redis_host,
    redis_port,
    trusted_proxies,
)
from casino_core.routers import accounts, history, play
from casino_core.services.compliance import LocationGate
from casino_core.services.game_service import GameService
from casino_core.services.history_stream import HistoryPublisher
from casino_core.services.ledger import InMemoryLedger, Ledger
from casino_core.services.ledger_db import SqlLedger
from casino_core.services.locks import LockRegistry
from casino_core.services.settlement import SettlementCoordinator

logging.basicConfig(level=logging.INFO)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

GUEST_RESET_CHECK_HOURS = 1


def schedule_guest_reset(scheduler: AsyncIOScheduler, settlement: SettlementCoordinator):
    """Check hourly for guests idle past the reset window"""
    return scheduler.add_job(
        settlement.reset_inactive_guests,
        "interval",
        hours=GUEST_RESET_CHECK_HOURS,
        args=[guest_reset_hours],
    )


def create_app(
    ledger: Ledger | None = None,
    location_gate=None,
    rng=None,
    redis: Redis | None = None,
    use_redis: bool = True,
    start_scheduler: bool = True,
    proxies: list[str] | None = None,
) -> FastAPI:
    """Build the service. Collaborators left as None are created from the
    environment when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        http_client = None
        active_ledger = ledger
        if active_ledger is None:
            engine = create_engine(ledger_backend)
            if engine is None:
                active_ledger = InMemoryLedger()
            else:
                await create_tables(engine)
                active_ledger = SqlLedger(create_session_factory(engine))
        logging.info(f"Ledger backend: {type(active_ledger).__name__}")

        gate = location_gate
        if gate is None:
            http_client = httpx.AsyncClient()
            gate = LocationGate(http_client, geo_service_url, geo_timeout_seconds)

        redis_client = redis
        if redis_client is None and use_redis:
            redis_client = Redis(host=redis_host, port=redis_port, decode_responses=True, health_check_interval=30)

        settlement = SettlementCoordinator(active_ledger, LockRegistry(), HistoryPublisher(redis_client))
        app.state.settlement = settlement
        app.state.redis = redis_client
        app.state.games = GameService(
            settlement,
            gate,
            rng=rng or SecureRNG(),
            demo_rng=DemoRNG() if demo_rng_enabled else None,
            hit_soft_17=hit_soft_17,
        )

        scheduler = AsyncIOScheduler()
        if start_scheduler:
            # Give idle guests their starting Gold Coin grant back
            schedule_guest_reset(scheduler, settlement)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler.running:
                scheduler.shutdown()
            if http_client is not None:
                await http_client.aclose()
            if redis_client is not None and redis is None:
                await redis_client.aclose()
            if engine is not None:
                await engine.dispose()
            logging.info("Stop Server")

    app = FastAPI(lifespan=lifespan)
    # peers allowed to name the client address in X-Forwarded-For
    app.state.trusted_proxies = frozenset(trusted_proxies if proxies is None else proxies)

    @app.exception_handler(CasinoError)
    async def casino_error_handler(request: Request, exc: CasinoError):
        if exc.status_code >= 500:
            logging.error(f"{exc.code} on {request.url.path}: {exc.detail}")
        content = {"code": exc.code, "detail": exc.detail}
        reason = getattr(exc, "reason", None)
        if reason:
            content["reason"] = reason
        return JSONResponse(status_code=exc.status_code, content=content)

    app.include_router(accounts.account_router)
    app.include_router(play.play_router)
    app.include_router(history.history_router)
    return app


app = create_app()
