from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from tsureben.api import deps
from tsureben.core.errors import UserNotFound
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.schemas.analytics import DailyTotal, StackedChart, SummaryWindow, TodayBreakdown
from tsureben.services import analytics as analytics_service
from tsureben.services import connections
from tsureben.services.document_store import DocumentStore
from tsureben.services.pomodoro import load_logs

router = APIRouter()


def _target_email(db: Session, current_user: User, email: str | None) -> str:
    """Teachers may read any student's charts; everyone else only their own."""
    if email is None or email == current_user.email:
        return current_user.email
    if not current_user.teacher:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Teachers only")
    try:
        return connections.get_user_by_email(db, email).email
    except UserNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc


@router.get("/today", response_model=TodayBreakdown)
def get_today(
    email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> TodayBreakdown:
    logs = load_logs(store, _target_email(db, current_user, email))
    return analytics_service.today_breakdown(logs, clock().date())


@router.get("/daily", response_model=list[DailyTotal])
def get_daily_totals(
    days: int = Query(default=7, ge=1, le=366),
    email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> list[DailyTotal]:
    logs = load_logs(store, _target_email(db, current_user, email))
    return analytics_service.daily_totals(logs, clock().date(), days)


@router.get("/stacked", response_model=StackedChart)
def get_stacked(
    view: Literal["week", "month"] = Query(default="week"),
    anchor: date | None = Query(default=None),
    email: str | None = Query(default=None),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> StackedChart:
    logs = load_logs(store, _target_email(db, current_user, email))
    return analytics_service.stacked_by_topic(logs, anchor or clock().date(), view)


@router.get("/summary/{window}", response_model=SummaryWindow)
def get_summary(
    window: Literal["yesterday", "week", "month"],
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> SummaryWindow:
    return analytics_service.load_summary(store, window)
