"""Events fed to the state machine.

User events come from the visual layer; result events are produced by the
driver after it executes an effect.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from focus_tutor.models.content import GameContent, SafetyVerdict
from focus_tutor.models.user import Roadmap, TeacherPersona, User
from focus_tutor.moderation.gate import ViolationOutcome
from focus_tutor.session.state import RequestKind, Screen

# --- user events ---


class SignupSubmitted(BaseModel):
    type: Literal["signup"] = "signup"
    name: str
    native_language: str
    target_language: str
    level: str
    interests: str = ""


class LoginRequested(BaseModel):
    type: Literal["login"] = "login"
    name: str
    user_id: str


class OnboardingMessageSubmitted(BaseModel):
    type: Literal["onboarding_message"] = "onboarding_message"
    text: str


class Navigate(BaseModel):
    type: Literal["navigate"] = "navigate"
    target: Screen


class TutorMessageSubmitted(BaseModel):
    type: Literal["tutor_message"] = "tutor_message"
    text: str


class EnterGame(BaseModel):
    type: Literal["enter_game"] = "enter_game"
    game_id: str


class AnswerSelected(BaseModel):
    type: Literal["answer"] = "answer"
    option: str


class NextQuestion(BaseModel):
    type: Literal["next_question"] = "next_question"


class ExitGame(BaseModel):
    type: Literal["exit_game"] = "exit_game"


class DismissOverlay(BaseModel):
    type: Literal["dismiss_overlay"] = "dismiss_overlay"


class Retry(BaseModel):
    type: Literal["retry"] = "retry"


UserEvent = Annotated[
    SignupSubmitted
    | LoginRequested
    | OnboardingMessageSubmitted
    | Navigate
    | TutorMessageSubmitted
    | EnterGame
    | AnswerSelected
    | NextQuestion
    | ExitGame
    | DismissOverlay
    | Retry,
    Field(discriminator="type"),
]

# --- result events ---


class SafetyChecked(BaseModel):
    type: Literal["safety_checked"] = "safety_checked"
    verdict: SafetyVerdict


class DeviceViolationRecorded(BaseModel):
    type: Literal["device_violation_recorded"] = "device_violation_recorded"
    outcome: ViolationOutcome


class AccountViolationRecorded(BaseModel):
    type: Literal["account_violation_recorded"] = "account_violation_recorded"
    outcome: ViolationOutcome
    user: User | None = None


class AccountLookedUp(BaseModel):
    type: Literal["account_looked_up"] = "account_looked_up"
    user: User | None = None


class OnboardingReplyReceived(BaseModel):
    type: Literal["onboarding_reply"] = "onboarding_reply"
    text: str


class ProfileGenerated(BaseModel):
    type: Literal["profile_generated"] = "profile_generated"
    persona: TeacherPersona
    roadmap: Roadmap


class UserCreated(BaseModel):
    type: Literal["user_created"] = "user_created"
    user: User


class TutorReplyReceived(BaseModel):
    type: Literal["tutor_reply"] = "tutor_reply"
    text: str


class ProgressSaved(BaseModel):
    type: Literal["progress_saved"] = "progress_saved"
    user: User | None = None


class GameItemReceived(BaseModel):
    type: Literal["game_item"] = "game_item"
    item: GameContent


class RequestFailed(BaseModel):
    """An external call or a storage write did not succeed."""

    type: Literal["request_failed"] = "request_failed"
    kind: RequestKind
    message: str = ""


Event = (
    SignupSubmitted
    | LoginRequested
    | OnboardingMessageSubmitted
    | Navigate
    | TutorMessageSubmitted
    | EnterGame
    | AnswerSelected
    | NextQuestion
    | ExitGame
    | DismissOverlay
    | Retry
    | SafetyChecked
    | DeviceViolationRecorded
    | AccountViolationRecorded
    | AccountLookedUp
    | OnboardingReplyReceived
    | ProfileGenerated
    | UserCreated
    | TutorReplyReceived
    | ProgressSaved
    | GameItemReceived
    | RequestFailed
)
