from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from ..core.config import settings
from ..core.errors import ServiceError
from ..deps.auth import require_session
from ..deps.services import get_aggregator, get_identity
from ..schemas.leaderboard import LeaderboardOut, ResetOut, ScreenTimeSubmit, SubmitOut
from ..services.aggregator import Aggregator, RankMode, SortOrder
from ..services.identity import IdentityService, SessionEvent, UserSession
from ..services.live import SnapshotStream

router = APIRouter(prefix="/api/v1", tags=["leaderboard"])
logger = logging.getLogger(__name__)


@router.post("/screen-time", response_model=SubmitOut, summary="Add minutes to this week's total")
def api_submit_screen_time(
    payload: ScreenTimeSubmit,
    session: UserSession = Depends(require_session),
    aggregator: Aggregator = Depends(get_aggregator),
):
    try:
        result = aggregator.submit(session, payload.minutes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return SubmitOut(
        week_id=result.week_id,
        week_start=result.week_start,
        weekly_minutes=result.weekly_minutes,
        lifetime_total=result.lifetime_total,
    )


@router.get("/leaderboard", response_model=LeaderboardOut)
def api_leaderboard(
    mode: RankMode = Query(RankMode.WEEKLY),
    order: SortOrder | None = Query(None),
    session: UserSession = Depends(require_session),
    aggregator: Aggregator = Depends(get_aggregator),
):
    return LeaderboardOut.from_snapshot(aggregator.snapshot(mode, order))


def _sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


@router.get("/leaderboard/stream", summary="Server-sent events with every leaderboard change")
async def api_leaderboard_stream(
    request: Request,
    mode: RankMode = Query(RankMode.WEEKLY),
    order: SortOrder | None = Query(None),
    session: UserSession = Depends(require_session),
    aggregator: Aggregator = Depends(get_aggregator),
    identity: IdentityService = Depends(get_identity),
):
    stream: SnapshotStream = await SnapshotStream.open(
        lambda listener, on_error: aggregator.ranked_view(mode, listener, order=order, on_error=on_error),
        idle_timeout=settings.STREAM_IDLE_SECONDS,
    )

    def _on_session_change(event: SessionEvent) -> None:
        if event.kind == "signed_out" and event.user_id == session.user_id and session.token_id in event.token_ids:
            stream.close()

    unsubscribe = identity.on_session_change(_on_session_change)

    async def events():
        try:
            async for snapshot in stream:
                if await request.is_disconnected():
                    break
                if snapshot is None:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse("snapshot", LeaderboardOut.from_snapshot(snapshot).model_dump_json())
        except ServiceError as exc:
            logger.warning("leaderboard.stream_failed", extra={"extra_data": {"code": exc.code}})
            yield _sse("error", json.dumps({"code": exc.code, "message": exc.message}))
        except Exception:
            logger.exception("leaderboard.stream_failed")
            yield _sse("error", json.dumps({"code": "stream_error", "message": "Leaderboard listener failed"}))
        finally:
            unsubscribe()
            stream.close()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/admin/reset", response_model=ResetOut, summary="Delete weekly records and zero all totals")
def api_reset_leaderboard(
    session: UserSession = Depends(require_session),
    aggregator: Aggregator = Depends(get_aggregator),
):
    result = aggregator.reset_all(session)
    if result is None:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return ResetOut(deleted_records=result.deleted_records, reset_profiles=result.reset_profiles)
