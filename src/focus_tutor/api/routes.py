"""REST API the visual layer drives the session through."""

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, TypeAdapter, ValidationError

from focus_tutor.session.driver import SessionDriver
from focus_tutor.session.events import UserEvent
from focus_tutor.session.view import SessionView

logger = structlog.get_logger()
router = APIRouter(prefix="/api")
_user_event = TypeAdapter(UserEvent)


class EventResult(BaseModel):
    accepted: bool
    reason: str | None = None
    view: SessionView


class RecentUser(BaseModel):
    id: str
    name: str
    target_language: str


def get_driver(request: Request) -> SessionDriver:
    return request.app.state.driver


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/session")
async def get_session(driver: SessionDriver = Depends(get_driver)) -> SessionView:
    """Current rendered view; the ban overlay wins over every screen."""
    return driver.view


@router.post("/session/events")
async def post_event(
    payload: dict = Body(...), driver: SessionDriver = Depends(get_driver)
) -> EventResult:
    """Dispatch one user event and return the resulting view."""
    try:
        event = _user_event.validate_python(payload)
    except ValidationError as e:
        logger.info("event_invalid", errors=e.error_count())
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )
    result = await driver.dispatch(event)
    return EventResult(accepted=result.rejected is None, reason=result.rejected, view=driver.view)


@router.get("/users/recent")
async def recent_users(driver: SessionDriver = Depends(get_driver)) -> list[RecentUser]:
    """Latest accounts on this device, for the login shortcut list."""
    return [
        RecentUser(id=u.id, name=u.name, target_language=u.preferences.target_language)
        for u in driver.store.recent_users()
        if not u.is_banned
    ]
