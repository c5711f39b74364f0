import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from tsureben.api import deps
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.schemas.presence import PresenceSnapshot
from tsureben.services import presence as presence_service
from tsureben.services.document_store import ACTIVE_USERS, DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/active", response_model=PresenceSnapshot)
def list_active(
    grade: str | None = Query(default=None),
    class_name: str | None = Query(default=None),
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> PresenceSnapshot:
    """Who is studying right now, as far as the caller may see."""
    viewer = presence_service.viewer_for(current_user)
    return PresenceSnapshot(
        users=presence_service.visible_presence(store, viewer, grade, class_name)
    )


@router.websocket("/stream")
async def presence_stream(
    websocket: WebSocket,
    token: str = Query(...),
    grade: str | None = Query(default=None),
    class_name: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> None:
    try:
        user = await run_in_threadpool(deps.user_from_token, db, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    feed = websocket.app.state.feed
    store = DocumentStore(db, feed)
    viewer = presence_service.viewer_for(user)

    async def snapshot() -> None:
        items = await run_in_threadpool(
            presence_service.visible_presence, store, viewer, grade, class_name
        )
        await websocket.send_json(PresenceSnapshot(users=items).model_dump(mode="json"))

    async def watch_client() -> None:
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            subscription.close()

    await websocket.accept()
    subscription = feed.subscribe(lambda change: change.collection == ACTIVE_USERS)
    watcher = asyncio.create_task(watch_client())
    try:
        await snapshot()
        async for _ in subscription:
            await snapshot()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        watcher.cancel()
        logger.debug(f"Presence stream closed for {user.email}")
