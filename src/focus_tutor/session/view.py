"""What the visual layer should draw for a session state."""

from enum import StrEnum

from pydantic import BaseModel, Field

from focus_tutor.generation.prompts import has_feedback_marker, strip_feedback_marker
from focus_tutor.models.user import Message, Roadmap, TeacherPersona, UserProgress
from focus_tutor.session.state import GAMES, Game, GameState, Overlay, SessionState


class ViewScreen(StrEnum):
    BAN = "ban"
    WELCOME = "welcome"
    ONBOARDING = "onboarding"
    GENERATING = "generating"
    HOME = "home"
    ROADMAP = "roadmap"
    TUTOR = "tutor"
    GAMES = "games"
    IN_GAME = "in_game"


class ChatLine(BaseModel):
    role: str
    text: str
    feedback_action: bool = False


class AccountSummary(BaseModel):
    id: str
    name: str
    target_language: str
    native_language: str
    level: str
    persona: TeacherPersona
    roadmap: Roadmap
    progress: UserProgress
    warning_count: int
    is_banned: bool


class SessionView(BaseModel):
    screen: ViewScreen
    show_nav: bool = False
    overlay: Overlay | None = None
    error: str | None = None
    can_retry: bool = False
    busy: bool = False
    banned_subject: str | None = None
    account: AccountSummary | None = None
    onboarding: list[ChatLine] = Field(default_factory=list)
    tutor: list[ChatLine] = Field(default_factory=list)
    games: list[Game] = Field(default_factory=list)
    game: GameState | None = None


def _chat_lines(messages: list[Message]) -> list[ChatLine]:
    return [
        ChatLine(
            role=m.role,
            text=strip_feedback_marker(m.text) if m.role == "model" else m.text,
            feedback_action=m.role == "model" and has_feedback_marker(m.text),
        )
        for m in messages
    ]


def render(state: SessionState) -> SessionView:
    """Ban overlay first, then the current screen; checked on every render."""
    user = state.current_user
    account = None
    if user is not None:
        account = AccountSummary(
            id=user.id,
            name=user.name,
            target_language=user.preferences.target_language,
            native_language=user.preferences.native_language,
            level=user.preferences.level,
            persona=user.persona,
            roadmap=user.roadmap,
            progress=user.progress,
            warning_count=user.warning_count,
            is_banned=user.is_banned,
        )

    if state.is_banned:
        return SessionView(
            screen=ViewScreen.BAN,
            banned_subject=user.id if user is not None else "Guest Device",
            account=account,
        )

    screen = ViewScreen(state.screen.value)
    if state.in_game:
        screen = ViewScreen.IN_GAME
    return SessionView(
        screen=screen,
        show_nav=state.show_nav,
        overlay=state.overlay,
        error=state.error,
        can_retry=state.error is not None and state.retry_effect is not None and not state.busy,
        busy=state.busy,
        account=account,
        onboarding=_chat_lines(state.onboarding_transcript),
        tutor=_chat_lines(state.tutor_history),
        games=list(GAMES.values()),
        game=state.game,
    )
