from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from tsureben.api import deps
from tsureben.core.errors import ConfirmationRequired, UserNotFound
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.schemas.user import MateLists, MateRequest, MateUser
from tsureben.services import connections

router = APIRouter()


def _not_found(exc: UserNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found: {exc}")


@router.get("/", response_model=MateLists)
def list_mates(
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> MateLists:
    result = connections.classify(current_user, db.query(User).order_by(User.id).all())
    return MateLists(
        **{
            name: [MateUser.model_validate(user) for user in getattr(result, name)]
            for name in ("mutual", "sent", "received", "hidden_pending", "hidden_mates")
        }
    )


@router.get("/search", response_model=list[MateUser])
def search_users(
    q: str = Query(default=""),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> list[MateUser]:
    return connections.search(db, current_user, q)


@router.post("/requests", response_model=list[str])
def send_requests(
    payload: MateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> list[str]:
    try:
        return connections.send_requests(db, current_user, payload.emails)
    except UserNotFound as exc:
        raise _not_found(exc) from exc


@router.delete("/requests/{email}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_request(
    email: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> None:
    connections.cancel_request(db, current_user, email)


@router.post("/{email}/accept", response_model=MateUser)
def accept_request(
    email: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> MateUser:
    try:
        return connections.accept(db, current_user, email)
    except UserNotFound as exc:
        raise _not_found(exc) from exc


@router.post("/{email}/hide", response_model=dict[str, str])
def hide_user(
    email: str,
    confirm: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> dict[str, str]:
    try:
        target = connections.hide(db, current_user, email, confirm=confirm)
    except ConfirmationRequired as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except UserNotFound as exc:
        raise _not_found(exc) from exc
    return {"email": email, "list": target}


@router.post("/{email}/unhide", status_code=status.HTTP_204_NO_CONTENT)
def unhide_user(
    email: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> None:
    connections.unhide(db, current_user, email)
