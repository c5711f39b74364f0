from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tsureben.api import deps
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.schemas.user import StudentSummary, UserPublic, UserUpdate

router = APIRouter()


@router.get("/me", response_model=UserPublic)
def get_profile(current_user: User = Depends(deps.get_current_user)) -> UserPublic:
    return current_user


@router.patch("/me", response_model=UserPublic)
def update_profile(
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> UserPublic:
    data = payload.model_dump(mode="json", exclude_unset=True, by_alias=True)
    for key, value in data.items():
        if value is not None:
            setattr(current_user, key, value)
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.get("/students", response_model=list[StudentSummary])
def list_students(
    grade: str = Query(...),
    class_name: str = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_teacher),
) -> list[StudentSummary]:
    students = (
        db.query(User)
        .filter(User.grade == grade, User.class_name == class_name, User.teacher.is_(False))
        .all()
    )
    return sorted(students, key=lambda s: int(s.number) if s.number.isdigit() else 999)
