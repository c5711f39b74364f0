from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import ValidationError

from tsureben.api import deps
from tsureben.core.errors import ConfirmationRequired, PlanNotFound
from tsureben.models.user import User
from tsureben.schemas.plan import (
    BulkRenameRequest,
    BulkRenameResult,
    CurrentPlan,
    DayPlans,
    PlanSlot,
    StudyPlanEntry,
    StudyPlanInput,
)
from tsureben.services import plans as plan_service
from tsureben.services.document_store import DocumentStore
from tsureben.services.schedule_index import ScheduleIndex

router = APIRouter()

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
HOUR_PATTERN = r"^([01]\d|2[0-3])$"


def _entry_for(payload: StudyPlanInput, day: str) -> StudyPlanEntry:
    try:
        return payload.for_date(day)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc


def _day_plans(store: DocumentStore, email: str, day: str) -> DayPlans:
    buckets = plan_service.load_day_buckets(store, email, day)
    index = ScheduleIndex(
        [entry for bucket in buckets.values() for entry in bucket], day=day
    )
    return DayPlans(
        date=day,
        buckets=buckets,
        slots=[PlanSlot(hour=slot.hour, entries=slot.entries) for slot in index.slots()],
        masked_hours=sorted(index.masked_hours()),
    )


@router.get("/catalog", response_model=dict[str, dict[str, list[str]]])
def get_catalog(
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> dict[str, dict[str, list[str]]]:
    return plan_service.catalog(store, current_user.email)


@router.get("/current", response_model=CurrentPlan)
def get_current_plan(
    store: DocumentStore = Depends(deps.get_store),
    clock: deps.Clock = Depends(deps.get_clock),
    current_user: User = Depends(deps.get_current_user),
) -> CurrentPlan:
    now = clock()
    plan, upcoming = plan_service.current_plan(store, current_user.email, now)
    return CurrentPlan(
        date=now.date().isoformat(), at=now.strftime("%H:%M"), plan=plan, upcoming=upcoming
    )


@router.post("/bulk-rename", response_model=BulkRenameResult)
def bulk_rename(
    payload: BulkRenameRequest,
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> BulkRenameResult:
    plans_updated, logs_updated = plan_service.bulk_rename(
        store,
        current_user.email,
        topic=(payload.topic.old, payload.topic.new) if payload.topic else None,
        book=(payload.book.old, payload.book.new) if payload.book else None,
    )
    return BulkRenameResult(plans_updated=plans_updated, logs_updated=logs_updated)


@router.get("/{day}", response_model=DayPlans)
def get_day(
    day: str = Path(..., pattern=DATE_PATTERN),
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> DayPlans:
    return _day_plans(store, current_user.email, day)


@router.post("/{day}", response_model=DayPlans, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: StudyPlanInput,
    day: str = Path(..., pattern=DATE_PATTERN),
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> DayPlans:
    plan_service.save_entry(store, current_user.email, _entry_for(payload, day))
    return _day_plans(store, current_user.email, day)


@router.put("/{day}/{hour}/{index}", response_model=DayPlans)
def update_plan(
    payload: StudyPlanInput,
    day: str = Path(..., pattern=DATE_PATTERN),
    hour: str = Path(..., pattern=HOUR_PATTERN),
    index: int = Path(..., ge=0),
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> DayPlans:
    try:
        plan_service.save_entry(
            store, current_user.email, _entry_for(payload, day), original_hour=hour, index=index
        )
    except PlanNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _day_plans(store, current_user.email, day)


@router.delete("/{day}/{hour}/{index}", response_model=DayPlans)
def delete_plan(
    day: str = Path(..., pattern=DATE_PATTERN),
    hour: str = Path(..., pattern=HOUR_PATTERN),
    index: int = Path(..., ge=0),
    confirm: bool = Query(default=False),
    store: DocumentStore = Depends(deps.get_store),
    current_user: User = Depends(deps.get_current_user),
) -> DayPlans:
    try:
        plan_service.delete_entry(store, current_user.email, day, hour, index, confirm=confirm)
    except ConfirmationRequired as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PlanNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _day_plans(store, current_user.email, day)
