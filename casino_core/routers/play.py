from fastapi import APIRouter, HTTPException, Request, status

from casino_core.domain import plinko_rules
from casino_core.exceptions import InvalidWager
from casino_core.models.dc_models import (
    BingoModel,
    DealModel,
    DrawModel,
    PlayResultModel,
    PlinkoModel,
    PlinkoTableModel,
    RoundActionModel,
    RoundResultModel,
    ScratchModel,
    SpinModel,
)
from casino_core.models.game_models import Risk
from casino_core.services.game_service import GameService

play_router = APIRouter()

BLACKJACK_ACTIONS = {"hit": "hit", "stand": "stand", "double-down": "double_down"}


def get_games(request: Request) -> GameService:
    return request.app.state.games


def client_ip(request: Request) -> str | None:
    """Address to geolocate.

    X-Forwarded-For is read only when the peer is a trusted proxy, and then
    the nearest hop that is not itself a trusted proxy is used.
    """
    peer = request.client.host if request.client else None
    trusted = request.app.state.trusted_proxies
    if peer not in trusted:
        return peer
    hops = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


@play_router.post("/slots/spin", response_model=PlayResultModel)
async def spin(spin_request: SpinModel, request: Request):
    return await get_games(request).spin(spin_request, client_ip(request))


@play_router.get("/plinko/multipliers", response_model=PlinkoTableModel)
async def plinko_multipliers(rows: int = plinko_rules.DEFAULT_ROWS, risk: Risk = Risk.medium):
    """Multiplier table with its bucket probabilities and expected return"""
    try:
        plinko_rules.validate_rows(rows)
    except ValueError as e:
        raise InvalidWager(str(e)) from e
    return PlinkoTableModel(
        rows=rows,
        risk=risk,
        multipliers=plinko_rules.get_multipliers(rows, risk),
        probabilities=plinko_rules.bucket_probabilities(rows),
        expected_return=plinko_rules.expected_return(rows, risk),
    )


@play_router.post("/plinko/drop", response_model=PlayResultModel)
async def drop(drop_request: PlinkoModel, request: Request):
    return await get_games(request).drop(drop_request, client_ip(request))


@play_router.post("/scratch/buy", response_model=PlayResultModel)
async def buy_ticket(ticket_request: ScratchModel, request: Request):
    return await get_games(request).buy_ticket(ticket_request, client_ip(request))


@play_router.post("/bingo/play", response_model=PlayResultModel)
async def play_bingo(bingo_request: BingoModel, request: Request):
    return await get_games(request).play_bingo(bingo_request, client_ip(request))


@play_router.post("/blackjack/deal", response_model=RoundResultModel)
async def deal_blackjack(deal_request: DealModel, request: Request):
    return await get_games(request).deal_blackjack(deal_request, client_ip(request))


@play_router.post("/blackjack/{round_id}/{action}", response_model=RoundResultModel)
async def blackjack_action(round_id: str, action: str, action_request: RoundActionModel, request: Request):
    if action not in BLACKJACK_ACTIONS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown blackjack action {action}")
    return await get_games(request).blackjack_action(
        round_id, action_request.user_id, BLACKJACK_ACTIONS[action], client_ip(request)
    )


@play_router.post("/poker/deal", response_model=RoundResultModel)
async def deal_poker(deal_request: DealModel, request: Request):
    return await get_games(request).deal_poker(deal_request, client_ip(request))


@play_router.post("/poker/{round_id}/draw", response_model=RoundResultModel)
async def draw_poker(round_id: str, draw_request: DrawModel, request: Request):
    return await get_games(request).draw_poker(round_id, draw_request)
