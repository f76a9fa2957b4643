from datetime import datetime
from typing import List

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from casino_core.converter import DataConverter
from casino_core.models.dc_models import HistoryEntryModel
from casino_core.services.history_stream import HistorySubscriber

history_router = APIRouter()
data_converter = DataConverter()


@history_router.get("/history/{user_id}", response_model=List[HistoryEntryModel])
async def get_history(
    user_id: str,
    request: Request,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    """Newest-first history of a user, optionally limited to [since, until)"""
    entries = await request.app.state.settlement.history(user_id, since, until, limit)
    return [data_converter.convert_entry_to_model(entry) for entry in entries]


@history_router.get("/history/{user_id}/stream")
async def stream_history(user_id: str, request: Request):
    redis = request.app.state.redis
    if redis is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="History stream is not configured")
    settlement = request.app.state.settlement
    await settlement.get_balance(user_id)
    subscriber = HistorySubscriber(settlement.ledger, user_id)
    return StreamingResponse(subscriber.event_generator(redis), media_type="text/event-stream")
