from fastapi import APIRouter

from tsureben.api.routes import (
    analytics,
    auth,
    mates,
    plans,
    pomodoro,
    presence,
    users,
)


api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(plans.router, prefix="/plans", tags=["plans"])
api_router.include_router(pomodoro.router, prefix="/pomodoro", tags=["pomodoro"])
api_router.include_router(presence.router, prefix="/presence", tags=["presence"])
api_router.include_router(mates.router, prefix="/mates", tags=["mates"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
