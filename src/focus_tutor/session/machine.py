"""Guarded transitions of the learning session.

``transition(state, event, ctx)`` is pure: it returns the next state plus the
effects the driver must execute. Every external call is an effect, so the
legality of each transition can be tested without a provider or a store.
"""

import random
from datetime import datetime
from typing import Any, NamedTuple

from focus_tutor.models.user import Message, User, UserPreferences, UserProgress
from focus_tutor.session import events as ev
from focus_tutor.session.effects import (
    ApplyAccountViolation,
    ApplyDeviceViolation,
    CheckSafety,
    CreateUser,
    Effect,
    FindAccount,
    GenerateProfile,
    RequestGameItem,
    RequestOnboardingReply,
    RequestTutorReply,
    SaveProgress,
)
from focus_tutor.session.state import (
    GAMES,
    MAX_CONCEPT_RUN,
    MIN_CONCEPT_RUN,
    FEEDBACK_STREAK,
    TAB_SCREENS,
    GameState,
    Overlay,
    RequestKind,
    Screen,
    SessionState,
)

ONBOARDING_USER_TURNS = 3
GOALS_SUMMARY_LIMIT = 150
TOPIC_LABEL_LIMIT = 60
XP_PER_EXCHANGE = 10

FAILURE_MESSAGES: dict[RequestKind, str] = {
    RequestKind.LOGIN: "We couldn't read saved accounts. Please try again.",
    RequestKind.PROFILE: "We couldn't connect to build your plan. Please try again.",
    RequestKind.CREATE_USER: "We couldn't save your profile. Please try again.",
    RequestKind.TUTOR_REPLY: "I'm having a little trouble connecting. Check your signal!",
    RequestKind.SAVE_PROGRESS: "Your progress couldn't be saved. Please try again.",
    RequestKind.GAME_ITEM: "Oops! Lost connection to the server.",
}
DEFAULT_FAILURE_MESSAGE = "Something went wrong. Please try again."
ONBOARDING_FALLBACK_REPLY = "Sorry, I'm having trouble connecting."
ONBOARDING_EMPTY_REPLY = "I didn't catch that."


class TransitionContext:
    """Clock and randomness available to transitions."""

    def __init__(self, now: datetime | None = None, rng: random.Random | None = None):
        self.now = now or datetime.now()
        self.rng = rng or random.Random()


class Transition(NamedTuple):
    state: SessionState
    effects: list[Effect]
    rejected: str | None = None


def onboarding_greeting(name: str, interests: str) -> Message:
    if interests:
        text = (
            f"Hi {name}! I see you're interested in {interests}. That helps me a lot! "
            "To finish your plan, I just need to know: What is your main goal for "
            "learning this language? (e.g. Work, Exam, Travel)"
        )
    else:
        text = (
            f"Hi {name}! I'm your AI Coach. To build your perfect plan, I need to know "
            "a bit about you. What is your main goal for learning this language?"
        )
    return Message(role="model", text=text)


def tutor_greeting(user: User) -> Message:
    return Message(
        role="model",
        text=(
            f"Hello {user.name}! I am {user.persona.name}. "
            f"Ready to dive into some {user.preferences.target_language}?"
        ),
    )


def seed_tutor_history(user: User) -> list[Message]:
    return list(user.chat_history) if user.chat_history else [tutor_greeting(user)]


def summarize_onboarding(transcript: list[Message]) -> str:
    """Goals summary: the transcript as ``role: text`` lines, cut to 150 characters."""
    return "\n".join(f"{m.role}: {m.text}" for m in transcript)[:GOALS_SUMMARY_LIMIT]


def progress_after_exchange(progress: UserProgress, topic: str, now: datetime) -> dict[str, Any]:
    """Progress fields to merge after one successful tutor exchange."""
    days = (now.date() - progress.last_session_date.date()).days
    if days <= 0:
        streak = progress.streak
    elif days == 1:
        streak = progress.streak + 1
    else:
        streak = 1
    label = " ".join(topic.split())
    if len(label) > TOPIC_LABEL_LIMIT:
        label = label[: TOPIC_LABEL_LIMIT - 3].rstrip() + "..."
    return {"last_topic": label or progress.last_topic, "xp": progress.xp + XP_PER_EXCHANGE, "streak": streak}


def _update(state: SessionState, **changes: Any) -> SessionState:
    return state.model_copy(update=changes)


def _accept(state: SessionState, *effects: Effect) -> Transition:
    return Transition(state, list(effects))


def _reject(state: SessionState, reason: str) -> Transition:
    return Transition(state, [], reason)


def _issue(state: SessionState, kind: RequestKind, effect: Effect, **changes: Any) -> Transition:
    """Start an external request: lock the control and remember how to retry it."""
    return _accept(
        _update(state, busy=True, pending_kind=kind, retry_effect=effect, error=None, **changes),
        effect,
    )


def _settle(state: SessionState, **changes: Any) -> SessionState:
    return _update(state, busy=False, pending_kind=None, pending_text=None, retry_effect=None, **changes)


# --- welcome ---


def _on_signup(state: SessionState, event: ev.SignupSubmitted, ctx: TransitionContext) -> Transition:
    if state.screen is not Screen.WELCOME:
        return _reject(state, "sign-up is only possible from the welcome screen")
    if state.busy:
        return _reject(state, "a request is already in progress")
    name = event.name.strip()
    if not name or not event.target_language.strip():
        return _reject(state, "name and target language are required")
    prefs = UserPreferences(
        native_language=event.native_language,
        target_language=event.target_language,
        level=event.level,
        interests=event.interests.strip(),
    )
    text = "\n".join(part for part in (name, prefs.interests) if part)
    return _issue(
        state,
        RequestKind.SIGNUP,
        CheckSafety(text=text),
        pending_name=name,
        pending_preferences=prefs,
        pending_text=text,
    )


def _on_login(state: SessionState, event: ev.LoginRequested, ctx: TransitionContext) -> Transition:
    if state.screen is not Screen.WELCOME:
        return _reject(state, "login is only possible from the welcome screen")
    if state.busy:
        return _reject(state, "a request is already in progress")
    return _issue(state, RequestKind.LOGIN, FindAccount(name=event.name, user_id=event.user_id))


def _on_account_looked_up(state: SessionState, event: ev.AccountLookedUp, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.LOGIN:
        return _reject(state, "no login in progress")
    user = event.user
    if user is None:
        return _accept(_settle(state, error="User not found."))
    if user.is_banned:
        return _accept(_settle(state, error="Account suspended."))
    return _accept(
        _settle(
            state,
            screen=Screen.HOME,
            current_user=user,
            tutor_history=seed_tutor_history(user),
        )
    )


# --- moderation ---


def _on_safety_checked(state: SessionState, event: ev.SafetyChecked, ctx: TransitionContext) -> Transition:
    kind = state.pending_kind
    if kind not in (RequestKind.SIGNUP, RequestKind.ONBOARDING_MESSAGE, RequestKind.TUTOR_MESSAGE):
        return _reject(state, "no safety check in progress")

    if not event.verdict.is_safe:
        if kind is RequestKind.SIGNUP:
            return _accept(_settle(state, overlay=Overlay.WARNING))
        if kind is RequestKind.TUTOR_MESSAGE and state.current_user is not None:
            return _accept(state, ApplyAccountViolation(user=state.current_user))
        return _accept(state, ApplyDeviceViolation())

    text = state.pending_text or ""
    if kind is RequestKind.SIGNUP:
        prefs = state.pending_preferences or UserPreferences()
        return _accept(
            _settle(
                state,
                screen=Screen.ONBOARDING,
                onboarding_transcript=[onboarding_greeting(state.pending_name, prefs.interests)],
            )
        )

    if kind is RequestKind.ONBOARDING_MESSAGE:
        before = list(state.onboarding_transcript)
        transcript = [*before, Message(role="user", text=text)]
        user_turns = sum(1 for m in transcript if m.role == "user")
        prefs = state.pending_preferences or UserPreferences()
        if user_turns >= ONBOARDING_USER_TURNS:
            prefs = prefs.model_copy(update={"goals": summarize_onboarding(transcript)})
            return _issue(
                state,
                RequestKind.PROFILE,
                GenerateProfile(preferences=prefs),
                screen=Screen.GENERATING,
                onboarding_transcript=transcript,
                pending_preferences=prefs,
                pending_text=None,
            )
        return _issue(
            state,
            RequestKind.ONBOARDING_REPLY,
            RequestOnboardingReply(history=before, message=text, interests=prefs.interests),
            onboarding_transcript=transcript,
        )

    user = state.current_user
    before = list(state.tutor_history)
    return _issue(
        state,
        RequestKind.TUTOR_REPLY,
        RequestTutorReply(
            history=before,
            message=text,
            persona=user.persona,
            target_language=user.preferences.target_language,
            native_language=user.preferences.native_language,
            level=user.preferences.level,
            last_topic=user.progress.last_topic,
        ),
        tutor_history=[*before, Message(role="user", text=text)],
    )


def _on_device_violation(state: SessionState, event: ev.DeviceViolationRecorded, ctx: TransitionContext) -> Transition:
    if state.pending_kind is None:
        return _reject(state, "no moderated input in progress")
    banned = event.outcome.should_ban
    return _accept(
        _settle(state, device_banned=banned, overlay=None if banned else Overlay.WARNING)
    )


def _on_account_violation(state: SessionState, event: ev.AccountViolationRecorded, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.TUTOR_MESSAGE:
        return _reject(state, "no tutor message in progress")
    user = event.user or state.current_user
    if user is not None and event.outcome.should_ban and not user.is_banned:
        user = user.model_copy(update={"is_banned": True, "warning_count": event.outcome.warnings})
    overlay = None if event.outcome.should_ban else Overlay.WARNING
    return _accept(_settle(state, current_user=user, overlay=overlay))


# --- onboarding & generation ---


def _on_onboarding_message(state: SessionState, event: ev.OnboardingMessageSubmitted, ctx: TransitionContext) -> Transition:
    if state.screen is not Screen.ONBOARDING:
        return _reject(state, "not in onboarding")
    if state.busy:
        return _reject(state, "a request is already in progress")
    text = event.text.strip()
    if not text:
        return _reject(state, "empty message")
    return _issue(state, RequestKind.ONBOARDING_MESSAGE, CheckSafety(text=text), pending_text=text)


def _on_onboarding_reply(state: SessionState, event: ev.OnboardingReplyReceived, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.ONBOARDING_REPLY:
        return _reject(state, "no onboarding reply expected")
    reply = Message(role="model", text=event.text.strip() or ONBOARDING_EMPTY_REPLY)
    return _accept(_settle(state, onboarding_transcript=[*state.onboarding_transcript, reply]))


def _on_profile_generated(state: SessionState, event: ev.ProfileGenerated, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.PROFILE or state.pending_preferences is None:
        return _reject(state, "no profile generation in progress")
    return _issue(
        state,
        RequestKind.CREATE_USER,
        CreateUser(
            name=state.pending_name,
            preferences=state.pending_preferences,
            persona=event.persona,
            roadmap=event.roadmap,
        ),
    )


def _on_user_created(state: SessionState, event: ev.UserCreated, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.CREATE_USER:
        return _reject(state, "no account creation in progress")
    return _accept(
        _settle(
            state,
            screen=Screen.HOME,
            current_user=event.user,
            tutor_history=seed_tutor_history(event.user),
            pending_name="",
            pending_preferences=None,
            onboarding_transcript=[],
        )
    )


# --- tabs ---


def _on_navigate(state: SessionState, event: ev.Navigate, ctx: TransitionContext) -> Transition:
    if state.screen not in TAB_SCREENS or state.current_user is None:
        return _reject(state, "navigation requires an active account")
    if event.target not in TAB_SCREENS:
        return _reject(state, f"cannot navigate to {event.target.value}")
    if state.in_game:
        return _reject(state, "exit the game first")
    if state.busy:
        return _accept(_update(state, screen=event.target))
    return _accept(_update(state, screen=event.target, error=None, retry_effect=None))


def _on_tutor_message(state: SessionState, event: ev.TutorMessageSubmitted, ctx: TransitionContext) -> Transition:
    if state.screen is not Screen.TUTOR or state.current_user is None:
        return _reject(state, "not in a tutoring session")
    if state.busy:
        return _reject(state, "a request is already in progress")
    text = event.text.strip()
    if not text:
        return _reject(state, "empty message")
    return _issue(state, RequestKind.TUTOR_MESSAGE, CheckSafety(text=text), pending_text=text)


def _on_tutor_reply(state: SessionState, event: ev.TutorReplyReceived, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.TUTOR_REPLY or state.current_user is None:
        return _reject(state, "no tutor reply expected")
    user = state.current_user
    history = [*state.tutor_history, Message(role="model", text=event.text)]
    delta = progress_after_exchange(user.progress, state.pending_text or "", ctx.now)
    return _issue(
        state,
        RequestKind.SAVE_PROGRESS,
        SaveProgress(user_id=user.id, progress_delta=delta, chat_history=history),
        tutor_history=history,
    )


def _on_progress_saved(state: SessionState, event: ev.ProgressSaved, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.SAVE_PROGRESS:
        return _reject(state, "no progress save in progress")
    return _accept(_settle(state, current_user=event.user or state.current_user))


# --- games ---


def _request_game_item(state: SessionState, game: GameState) -> Transition:
    prefs = state.current_user.preferences
    return _issue(
        state,
        RequestKind.GAME_ITEM,
        RequestGameItem(
            target_language=prefs.target_language,
            native_language=prefs.native_language,
            level=prefs.level,
            theme=game.theme,
            prior_concept=game.next_prior_concept,
        ),
        game=game,
    )


def _on_enter_game(state: SessionState, event: ev.EnterGame, ctx: TransitionContext) -> Transition:
    if state.screen is not Screen.GAMES or state.current_user is None:
        return _reject(state, "games are only reachable from the games tab")
    if state.in_game:
        return _reject(state, "a game is already active")
    if state.busy:
        return _reject(state, "a request is already in progress")
    game = GAMES.get(event.game_id)
    if game is None:
        return _reject(state, f"unknown game {event.game_id!r}")
    if game.locked:
        return _reject(state, f"{game.title} is locked")
    return _request_game_item(state, GameState(game_id=game.id))


def _on_game_item(state: SessionState, event: ev.GameItemReceived, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not RequestKind.GAME_ITEM or state.game is None:
        return _reject(state, "no game question expected")
    game = state.game
    item = event.item
    if game.rotate_concept:
        drill = {
            "current_concept": item.concept,
            "reps": 1,
            "max_reps": ctx.rng.randint(MIN_CONCEPT_RUN, MAX_CONCEPT_RUN),
        }
    else:
        drill = {"current_concept": item.concept, "reps": game.reps + 1}
    return _accept(_settle(state, game=game.model_copy(update={"item": item, "selected": None, **drill})))


def _on_answer(state: SessionState, event: ev.AnswerSelected, ctx: TransitionContext) -> Transition:
    game = state.game
    if game is None or game.item is None:
        return _reject(state, "no question to answer")
    if game.answered:
        return _reject(state, "question already answered")
    if event.option not in game.item.options:
        return _reject(state, "not one of the options")
    streak = game.correct_streak + 1 if game.item.is_correct(event.option) else 0
    overlay = Overlay.FEEDBACK_PROMPT if streak == FEEDBACK_STREAK else state.overlay
    return _accept(
        _update(
            state,
            game=game.model_copy(update={"selected": event.option, "correct_streak": streak}),
            overlay=overlay,
        )
    )


def _on_next_question(state: SessionState, event: ev.NextQuestion, ctx: TransitionContext) -> Transition:
    game = state.game
    if game is None:
        return _reject(state, "no active game")
    if state.busy:
        return _reject(state, "a request is already in progress")
    if game.item is not None and not game.answered:
        return _reject(state, "answer the current question first")
    return _request_game_item(state, game)


def _on_exit_game(state: SessionState, event: ev.ExitGame, ctx: TransitionContext) -> Transition:
    if state.game is None:
        return _reject(state, "no active game")
    if state.pending_kind is RequestKind.GAME_ITEM:
        return _accept(_settle(state, game=None, error=None))
    return _accept(_update(state, game=None))


# --- shared ---


def _on_dismiss_overlay(state: SessionState, event: ev.DismissOverlay, ctx: TransitionContext) -> Transition:
    if state.overlay is None:
        return _reject(state, "nothing to dismiss")
    return _accept(_update(state, overlay=None))


def _on_retry(state: SessionState, event: ev.Retry, ctx: TransitionContext) -> Transition:
    if state.busy or state.error is None or state.retry_effect is None:
        return _reject(state, "nothing to retry")
    effect = state.retry_effect
    return _accept(_update(state, busy=True, error=None), effect)


def _on_request_failed(state: SessionState, event: ev.RequestFailed, ctx: TransitionContext) -> Transition:
    if state.pending_kind is not event.kind:
        return _reject(state, f"no {event.kind.value} request in progress")
    if event.kind is RequestKind.ONBOARDING_REPLY:
        fallback = Message(role="model", text=ONBOARDING_FALLBACK_REPLY)
        return _accept(_settle(state, onboarding_transcript=[*state.onboarding_transcript, fallback]))
    message = FAILURE_MESSAGES.get(event.kind, DEFAULT_FAILURE_MESSAGE)
    # pending_kind and retry_effect stay so a retry lands in the same handler.
    return _accept(_update(state, busy=False, error=message))


_HANDLERS = {
    ev.SignupSubmitted: _on_signup,
    ev.LoginRequested: _on_login,
    ev.AccountLookedUp: _on_account_looked_up,
    ev.SafetyChecked: _on_safety_checked,
    ev.DeviceViolationRecorded: _on_device_violation,
    ev.AccountViolationRecorded: _on_account_violation,
    ev.OnboardingMessageSubmitted: _on_onboarding_message,
    ev.OnboardingReplyReceived: _on_onboarding_reply,
    ev.ProfileGenerated: _on_profile_generated,
    ev.UserCreated: _on_user_created,
    ev.Navigate: _on_navigate,
    ev.TutorMessageSubmitted: _on_tutor_message,
    ev.TutorReplyReceived: _on_tutor_reply,
    ev.ProgressSaved: _on_progress_saved,
    ev.EnterGame: _on_enter_game,
    ev.GameItemReceived: _on_game_item,
    ev.AnswerSelected: _on_answer,
    ev.NextQuestion: _on_next_question,
    ev.ExitGame: _on_exit_game,
    ev.DismissOverlay: _on_dismiss_overlay,
    ev.Retry: _on_retry,
    ev.RequestFailed: _on_request_failed,
}


def transition(state: SessionState, event: ev.Event, ctx: TransitionContext | None = None) -> Transition:
    """Apply one event. A banned session accepts nothing."""
    if state.is_banned:
        return _reject(state, "banned")
    handler = _HANDLERS.get(type(event))
    if handler is None:
        return _reject(state, f"unhandled event {type(event).__name__}")
    return handler(state, event, ctx or TransitionContext())
