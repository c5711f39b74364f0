import asyncio
import logging

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from tsureben.api import deps
from tsureben.core.config import get_settings
from tsureben.core.errors import (
    InvalidTransition,
    ManualEntryRequired,
    NoActivePlan,
    OrphanedSession,
)
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.schemas.pomodoro import FinishRequest, FinishResult, TimerAnchor, TimerStatus
from tsureben.services import plans as plan_service
from tsureben.services import pomodoro as pomodoro_service
from tsureben.services.document_store import TIMER_ANCHORS, DocumentStore
from tsureben.services.session_timer import SessionTimer

logger = logging.getLogger(__name__)

router = APIRouter()


def _timer_from(anchor: TimerAnchor | None, store: DocumentStore, user: User, **kwargs) -> SessionTimer:
    settings = get_settings()
    sink = pomodoro_service.StoreSessionSink(
        store, user, lookup_attempts=settings.finish_lookup_attempts
    )
    return SessionTimer.restore(
        anchor,
        sink,
        min_minutes=settings.min_session_minutes,
        max_minutes=settings.max_session_minutes,
        **kwargs,
    )


def _load_timer(store: DocumentStore, user: User) -> SessionTimer:
    return _timer_from(pomodoro_service.load_anchor(store, user.email), store, user)


def _status(store: DocumentStore, user: User, timer: SessionTimer, clock: deps.Clock) -> TimerStatus:
    orphans = pomodoro_service.orphaned_entries(store, user.email, timer.to_anchor())
    return pomodoro_service.timer_status(timer, clock(), orphans)


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/state", response_model=TimerStatus)
def get_state(
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TimerStatus:
    timer = _load_timer(store, current_user)
    return _status(store, current_user, timer, clock)


@router.post("/start", response_model=TimerStatus)
def start_timer(
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TimerStatus:
    """Start a session on the plan covering now, or resume a paused one."""
    now = clock()
    timer = _load_timer(store, current_user)
    plan, _ = plan_service.current_plan(store, current_user.email, now)
    try:
        started = timer.start(plan, now)
    except NoActivePlan as exc:
        raise _conflict(exc) from exc
    if not started:
        # a concurrent start owns the session; report its state
        timer = _load_timer(store, current_user)
    return _status(store, current_user, timer, clock)


@router.post("/pause", response_model=TimerStatus)
def pause_timer(
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TimerStatus:
    timer = _load_timer(store, current_user)
    try:
        timer.pause(clock())
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _status(store, current_user, timer, clock)


@router.post("/resume", response_model=TimerStatus)
def resume_timer(
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TimerStatus:
    timer = _load_timer(store, current_user)
    try:
        timer.resume(clock())
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _status(store, current_user, timer, clock)


@router.post("/finish", response_model=FinishResult)
def finish_timer(
    payload: FinishRequest,
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    claims: dict = Depends(deps.get_session_claims),
    current_user: User = Depends(deps.get_session_user),
) -> FinishResult:
    """Save the session's minutes.

    Answers 428 with ``{code, min, max}`` when a hand-entered minute count is
    needed; the client asks the user and retries with ``manual_minutes``.
    """
    now = clock()
    settings = get_settings()
    timer = _load_timer(store, current_user)
    identity = pomodoro_service.TokenIdentity(
        current_user.email, claims, payload.refresh_token, now
    )
    try:
        return timer.finish(
            now,
            identity=identity,
            prompt=pomodoro_service.PayloadPrompt(payload.manual_minutes),
        )
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    except ManualEntryRequired as exc:
        raise HTTPException(
            status_code=status.HTTP_428_PRECONDITION_REQUIRED,
            detail={
                "code": exc.reason,
                "min": settings.min_session_minutes,
                "max": settings.max_session_minutes,
            },
        ) from exc
    except OrphanedSession as exc:
        logger.error(f"Finish for {current_user.email} lost its log entry: {exc}")
        raise _conflict(exc) from exc


@router.post("/discard", response_model=TimerStatus)
def discard_timer(
    confirm: bool = Query(default=False),
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TimerStatus:
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Discarding a session must be confirmed",
        )
    timer = _load_timer(store, current_user)
    try:
        timer.discard()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _status(store, current_user, timer, clock)


@router.websocket("/stream")
async def timer_stream(
    websocket: WebSocket,
    token: str = Query(...),
    db: Session = Depends(get_db),
    clock: deps.Clock = Depends(deps.get_clock),
) -> None:
    """Push elapsed-time ticks while running, and a fresh status on every change.

    Changes made from another tab or device arrive through the change feed and
    rebuild the local timer from the stored anchor.
    """
    try:
        user = await run_in_threadpool(deps.user_from_token, db, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    feed = websocket.app.state.feed
    store = DocumentStore(db, feed)
    outbox: asyncio.Queue = asyncio.Queue()
    tick_seconds = get_settings().timer_tick_seconds

    async def build_timer() -> SessionTimer:
        # restore() starts the ticker, which must run on this loop
        anchor = await run_in_threadpool(pomodoro_service.load_anchor, store, user.email)
        return _timer_from(
            anchor,
            store,
            user,
            clock=clock,
            on_tick=lambda elapsed: outbox.put_nowait(("tick", elapsed)),
            tick_interval=tick_seconds,
        )

    async def send_status(timer: SessionTimer) -> None:
        current = await run_in_threadpool(_status, store, user, timer, clock)
        await websocket.send_json({"type": "status", **current.model_dump(mode="json")})

    async def forward_changes(subscription) -> None:
        async for change in subscription:
            outbox.put_nowait(("change", change))

    async def watch_client() -> None:
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            outbox.put_nowait(("closed", None))

    await websocket.accept()
    subscription = feed.subscribe(
        lambda change: change.collection == TIMER_ANCHORS and change.key == user.email
    )
    timer = await build_timer()
    tasks = [
        asyncio.create_task(forward_changes(subscription)),
        asyncio.create_task(watch_client()),
    ]
    try:
        await send_status(timer)
        while True:
            kind, value = await outbox.get()
            if kind == "closed":
                break
            if kind == "tick":
                await websocket.send_json({"type": "tick", "elapsed_seconds": value})
                continue
            timer.teardown()
            timer = await build_timer()
            await send_status(timer)
    except WebSocketDisconnect:
        pass
    finally:
        timer.teardown()
        subscription.close()
        for task in tasks:
            task.cancel()
        logger.debug(f"Timer stream closed for {user.email}")
