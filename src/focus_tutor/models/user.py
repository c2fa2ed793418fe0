"""User record models persisted by the record store."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ROADMAP_WEEKS = 4


class UserPreferences(BaseModel):
    native_language: str = "English"
    target_language: str = ""
    level: str = "Beginner (A1)"
    goals: str = ""  # filled in once onboarding completes
    interests: str = ""
    learning_style: str = ""


class TeacherPersona(BaseModel):
    name: str
    age: int
    personality: str
    teaching_style: str
    catchphrase: str
    avatar_seed: int


class WeeklyGoal(BaseModel):
    week: int = Field(ge=1, le=ROADMAP_WEEKS)
    theme: str
    focus: str
    activity: str
    completed: bool = False


class Roadmap(BaseModel):
    """Four-week plan, ordered by week index."""

    weeks: list[WeeklyGoal]

    @field_validator("weeks")
    @classmethod
    def _exactly_four_weeks(cls, weeks: list[WeeklyGoal]) -> list[WeeklyGoal]:
        if len(weeks) != ROADMAP_WEEKS:
            raise ValueError(f"roadmap must have {ROADMAP_WEEKS} weeks, got {len(weeks)}")
        ordered = sorted(weeks, key=lambda w: w.week)
        if [w.week for w in ordered] != list(range(1, ROADMAP_WEEKS + 1)):
            raise ValueError("roadmap weeks must be numbered 1..4")
        return ordered


class Message(BaseModel):
    role: Literal["user", "model"]
    text: str


class UserProgress(BaseModel):
    last_session_date: datetime = Field(default_factory=datetime.now)
    last_topic: str = "Introduction"
    xp: int = 0
    streak: int = 1


class User(BaseModel):
    """Aggregate root for a learner account."""

    id: str
    name: str
    preferences: UserPreferences
    persona: TeacherPersona
    roadmap: Roadmap
    progress: UserProgress = Field(default_factory=UserProgress)
    chat_history: list[Message] = Field(default_factory=list)
    warning_count: int = Field(default=0, ge=0)
    is_banned: bool = False


class DeviceState(BaseModel):
    """Moderation state of the local installation, independent of any account."""

    banned: bool = False
    warnings: int = Field(default=0, ge=0)
