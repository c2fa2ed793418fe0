"""Side effects requested by the state machine and executed by the driver."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from focus_tutor.models.user import Message, Roadmap, TeacherPersona, User, UserPreferences


class CheckSafety(BaseModel):
    type: Literal["check_safety"] = "check_safety"
    text: str


class ApplyDeviceViolation(BaseModel):
    type: Literal["apply_device_violation"] = "apply_device_violation"


class ApplyAccountViolation(BaseModel):
    type: Literal["apply_account_violation"] = "apply_account_violation"
    user: User


class FindAccount(BaseModel):
    type: Literal["find_account"] = "find_account"
    name: str
    user_id: str


class RequestOnboardingReply(BaseModel):
    type: Literal["request_onboarding_reply"] = "request_onboarding_reply"
    history: list[Message]
    message: str
    interests: str = ""


class GenerateProfile(BaseModel):
    type: Literal["generate_profile"] = "generate_profile"
    preferences: UserPreferences


class CreateUser(BaseModel):
    type: Literal["create_user"] = "create_user"
    name: str
    preferences: UserPreferences
    persona: TeacherPersona
    roadmap: Roadmap


class RequestTutorReply(BaseModel):
    type: Literal["request_tutor_reply"] = "request_tutor_reply"
    history: list[Message]
    message: str
    persona: TeacherPersona
    target_language: str
    native_language: str
    level: str
    last_topic: str | None = None


class SaveProgress(BaseModel):
    type: Literal["save_progress"] = "save_progress"
    user_id: str
    progress_delta: dict[str, Any]
    chat_history: list[Message] | None = None


class RequestGameItem(BaseModel):
    type: Literal["request_game_item"] = "request_game_item"
    target_language: str
    native_language: str
    level: str
    theme: str
    prior_concept: str | None = None


Effect = Annotated[
    CheckSafety
    | ApplyDeviceViolation
    | ApplyAccountViolation
    | FindAccount
    | RequestOnboardingReply
    | GenerateProfile
    | CreateUser
    | RequestTutorReply
    | SaveProgress
    | RequestGameItem,
    Field(discriminator="type"),
]
