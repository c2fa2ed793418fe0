"""Session state held in memory for one running app."""

from enum import StrEnum

from pydantic import BaseModel, Field

from focus_tutor.models.content import GameContent
from focus_tutor.models.user import Message, User, UserPreferences
from focus_tutor.session.effects import Effect

DEFAULT_GAME_THEME = "Common Phrases"
MIN_CONCEPT_RUN = 3
MAX_CONCEPT_RUN = 5
FEEDBACK_STREAK = 3


class Screen(StrEnum):
    """Application states; WELCOME is where every fresh session starts."""

    WELCOME = "welcome"
    ONBOARDING = "onboarding"
    GENERATING = "generating"
    HOME = "home"
    ROADMAP = "roadmap"
    TUTOR = "tutor"
    GAMES = "games"


TAB_SCREENS = (Screen.HOME, Screen.ROADMAP, Screen.GAMES, Screen.TUTOR)


class Overlay(StrEnum):
    WARNING = "warning"
    FEEDBACK_PROMPT = "feedback_prompt"


class RequestKind(StrEnum):
    """What an outstanding external request was issued for."""

    SIGNUP = "signup"
    LOGIN = "login"
    ONBOARDING_MESSAGE = "onboarding_message"
    ONBOARDING_REPLY = "onboarding_reply"
    PROFILE = "profile"
    CREATE_USER = "create_user"
    TUTOR_MESSAGE = "tutor_message"
    TUTOR_REPLY = "tutor_reply"
    SAVE_PROGRESS = "save_progress"
    GAME_ITEM = "game_item"


class Game(BaseModel):
    id: str
    title: str
    subtitle: str
    locked: bool = False


GAMES: dict[str, Game] = {
    g.id: g
    for g in [
        Game(id="vocab_blast", title="Vocab Blast", subtitle="Quick-fire words"),
        Game(id="speak_up", title="Speak Up", subtitle="Pronunciation", locked=True),
        Game(id="audio_match", title="Audio Match", subtitle="Listening skills", locked=True),
        Game(id="story_time", title="Story Time", subtitle="Reading comprehension", locked=True),
    ]
}


class GameState(BaseModel):
    """In-game sub-state: the current question plus the concept drill."""

    game_id: str
    theme: str = DEFAULT_GAME_THEME
    item: GameContent | None = None
    selected: str | None = None
    current_concept: str | None = None
    reps: int = 0
    max_reps: int = MIN_CONCEPT_RUN
    correct_streak: int = 0

    @property
    def answered(self) -> bool:
        return self.selected is not None

    @property
    def rotate_concept(self) -> bool:
        return self.current_concept is None or self.reps >= self.max_reps

    @property
    def next_prior_concept(self) -> str | None:
        return None if self.rotate_concept else self.current_concept


class SessionState(BaseModel):
    screen: Screen = Screen.WELCOME
    pending_name: str = ""
    pending_preferences: UserPreferences | None = None
    onboarding_transcript: list[Message] = Field(default_factory=list)
    current_user: User | None = None
    tutor_history: list[Message] = Field(default_factory=list)
    game: GameState | None = None
    device_banned: bool = False
    overlay: Overlay | None = None
    error: str | None = None
    busy: bool = False
    pending_kind: RequestKind | None = None
    pending_text: str | None = None
    # Effect to re-issue when the learner asks to retry a failed request.
    retry_effect: Effect | None = None

    @property
    def is_banned(self) -> bool:
        return self.device_banned or (self.current_user is not None and self.current_user.is_banned)

    @property
    def in_game(self) -> bool:
        return self.game is not None

    @property
    def show_nav(self) -> bool:
        return self.screen in TAB_SCREENS and not self.in_game
