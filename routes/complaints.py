# routes/complaints.py
import asyncio
import logging
from contextlib import suppress
from typing import List, Optional

from fastapi import (
    APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status,
)
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from auth.deps import active_user, get_current_user, require_roles, user_from_token
from Connections.db_sql import SessionLocal, get_db
from Models.auth_models import ROLE_STUDENT, STAFF_ROLES, User
from Models.complaints_models import Complaint, STATUS_PENDING, STATUS_RESOLVED
from Schemas.complaints_schema import (
    CategoryLiteral, ComplaintCreate, ComplaintOut, ComplaintSnapshot,
    ComplaintStatsOut, StatusLiteral,
)
from utils.complaint_feed import ComplaintFeed, get_feed
from utils.complaint_scope import get_visible, list_visible, scoped_stats
from utils.date_utils import utcnow

router = APIRouter()
logger = logging.getLogger(__name__)

WS_UNAUTHORIZED = 4401


# ---------- Reads ----------
@router.get("/", response_model=List[ComplaintOut])
def list_complaints(
        status_q: Optional[StatusLiteral] = Query(None, alias="status"),
        category: Optional[CategoryLiteral] = None,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
):
    return list_visible(db, user, status_q, category)


@router.get("/stats", response_model=ComplaintStatsOut)
def complaint_stats(
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
):
    return scoped_stats(db, user)


@router.get("/{complaint_id:int}", response_model=ComplaintOut)
def get_complaint(
        complaint_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
):
    c = get_visible(db, user, complaint_id)
    if not c:
        raise HTTPException(status_code=404, detail="Complaint not found")
    return c


# ---------- Writes ----------
@router.post("/", response_model=ComplaintOut, status_code=status.HTTP_201_CREATED)
def create_complaint(
        body: ComplaintCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(ROLE_STUDENT)),
        feed: ComplaintFeed = Depends(get_feed),
):
    p = user.profile
    c = Complaint(
        author_email=p.email,
        author_name=p.name,
        category=body.category,
        description=body.description,
        status=STATUS_PENDING,
        branch=p.branch,
        attachment_url=str(body.attachment_url) if body.attachment_url else None,
        created_at=utcnow(),
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    logger.info("Complaint %s lodged by %s (%s/%s)", c.id, p.email, c.branch, c.category)
    feed.publish("insert", c.id)
    return c


@router.post("/{complaint_id:int}/resolve", response_model=ComplaintOut)
def resolve_complaint(
        complaint_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*STAFF_ROLES)),
        feed: ComplaintFeed = Depends(get_feed),
):
    c = get_visible(db, user, complaint_id)
    if not c:
        raise HTTPException(status_code=404, detail="Complaint not found")
    if c.status != STATUS_PENDING:
        raise HTTPException(status_code=409, detail=f"Complaint is already {c.status}")

    c.status = STATUS_RESOLVED
    c.resolved_at = utcnow()
    c.resolved_by = user.profile.name
    db.commit()
    db.refresh(c)
    logger.info("Complaint %s resolved by %s", c.id, user.profile.email)
    feed.publish("update", c.id)
    return c


# ---------- Live subscription ----------
def _authenticate(token: str) -> int:
    db = SessionLocal()
    try:
        return user_from_token(db, token).user_id
    finally:
        db.close()


def _snapshot_loader(user_id: int, status_q: Optional[str], category: Optional[str]):
    def load() -> dict:
        db = SessionLocal()
        try:
            # the token is checked once at connect; the account and its scope are
            # re-read per snapshot so a role change or deletion applies at once
            user = active_user(db, user_id)
            items = list_visible(db, user, status_q, category)
            snap = ComplaintSnapshot(
                items=[ComplaintOut.model_validate(c) for c in items],
                total=len(items),
            )
            return snap.model_dump(mode="json")
        finally:
            db.close()

    return load


async def _pump(websocket: WebSocket, stream) -> None:
    async for snapshot in stream:
        await websocket.send_json(snapshot)


async def _drain(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/live")
async def live_complaints(
        websocket: WebSocket,
        token: str = Query(...),
        status_q: Optional[StatusLiteral] = Query(None, alias="status"),
        category: Optional[CategoryLiteral] = None,
):
    try:
        user_id = await run_in_threadpool(_authenticate, token)
    except HTTPException as e:
        await websocket.close(code=WS_UNAUTHORIZED, reason=str(e.detail))
        return

    await websocket.accept()
    feed: ComplaintFeed = websocket.app.state.complaint_feed

    async with feed.subscribe(_snapshot_loader(user_id, status_q, category)) as stream:
        pump_task = asyncio.create_task(_pump(websocket, stream))
        drain_task = asyncio.create_task(_drain(websocket))
        done, pending = await asyncio.wait(
            {pump_task, drain_task}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
            with suppress(asyncio.CancelledError, WebSocketDisconnect):
                await task

    if pump_task in done and not pump_task.cancelled():
        exc = pump_task.exception()
        if isinstance(exc, HTTPException):
            # the account was deleted, disabled or lost its profile
            await websocket.close(code=WS_UNAUTHORIZED, reason=str(exc.detail))
        elif exc is not None:
            logger.warning("Live feed for user %s stopped: %s", user_id, exc)
    if drain_task in done and not drain_task.cancelled() and drain_task.exception() is not None:
        logger.warning("Live feed for user %s lost its socket: %s", user_id, drain_task.exception())
