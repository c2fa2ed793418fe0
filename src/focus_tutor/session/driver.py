"""Runs the session: applies events, executes effects, feeds results back."""

import random
from datetime import datetime

import structlog

from focus_tutor.generation.client import ContentGenerator, GenerationError
from focus_tutor.moderation.gate import ModerationGate
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
from focus_tutor.session.machine import Transition, TransitionContext, transition
from focus_tutor.session.state import RequestKind, SessionState
from focus_tutor.session.view import SessionView, render
from focus_tutor.storage.local_storage import StorageError
from focus_tutor.storage.record_store import IdSpaceExhausted, RecordStore

logger = structlog.get_logger()


class SessionDriver:
    """One learner session on this device.

    Transitions are applied synchronously, so a second submission that
    arrives while an effect is awaited sees ``busy`` and is rejected.

    Args:
        store: Record store shared with the moderation gate.
        generator: Content generator for replies and generated content.
        gate: Moderation gate; built from store and generator when omitted.
        rng: Random source for drill run lengths.
        clock: Returns the current time.
    """

    def __init__(
        self,
        store: RecordStore,
        generator: ContentGenerator,
        gate: ModerationGate | None = None,
        rng: random.Random | None = None,
        clock=datetime.now,
    ):
        self.store = store
        self.generator = generator
        self.gate = gate or ModerationGate(generator, store)
        self._rng = rng or random.Random()
        self._clock = clock
        self.state = SessionState(device_banned=store.device_state().banned)

    @property
    def view(self) -> SessionView:
        return render(self.state)

    def apply(self, event: ev.Event) -> Transition:
        result = transition(self.state, event, TransitionContext(now=self._clock(), rng=self._rng))
        if result.rejected:
            logger.info("event_rejected", event_type=type(event).__name__, reason=result.rejected)
        self.state = result.state
        return result

    async def dispatch(self, event: ev.Event) -> Transition:
        """Apply a user event and run every effect it leads to."""
        first = self.apply(event)
        queue: list[Effect] = list(first.effects)
        while queue:
            effect = queue.pop(0)
            follow_up = await self._execute(effect)
            if follow_up is not None:
                queue.extend(self.apply(follow_up).effects)
        return first

    async def _execute(self, effect: Effect) -> ev.Event | None:
        try:
            return await self._run(effect)
        except StorageError as e:
            logger.error("effect_storage_failed", effect=effect.type, error=str(e))
            return ev.RequestFailed(kind=self.state.pending_kind or RequestKind.SAVE_PROGRESS, message=str(e))

    async def _run(self, effect: Effect) -> ev.Event | None:
        if isinstance(effect, CheckSafety):
            return ev.SafetyChecked(verdict=await self.gate.check_safety(effect.text))

        if isinstance(effect, ApplyDeviceViolation):
            return ev.DeviceViolationRecorded(outcome=self.gate.apply_device_violation())

        if isinstance(effect, ApplyAccountViolation):
            outcome, user = self.gate.apply_account_violation(effect.user)
            return ev.AccountViolationRecorded(outcome=outcome, user=user)

        if isinstance(effect, FindAccount):
            return ev.AccountLookedUp(user=self.store.find_user_by_name_and_id(effect.name, effect.user_id))

        if isinstance(effect, RequestOnboardingReply):
            try:
                text = await self.generator.onboarding_reply(effect.history, effect.message, effect.interests)
            except GenerationError as e:
                return ev.RequestFailed(kind=RequestKind.ONBOARDING_REPLY, message=str(e))
            return ev.OnboardingReplyReceived(text=text)

        if isinstance(effect, GenerateProfile):
            try:
                persona = await self.generator.generate_persona(effect.preferences)
                roadmap = await self.generator.generate_roadmap(effect.preferences)
            except GenerationError as e:
                logger.warning("profile_generation_failed", error=str(e))
                return ev.RequestFailed(kind=RequestKind.PROFILE, message=str(e))
            return ev.ProfileGenerated(persona=persona, roadmap=roadmap)

        if isinstance(effect, CreateUser):
            try:
                user = self.store.create_user(effect.name, effect.preferences, effect.persona, effect.roadmap)
            except IdSpaceExhausted as e:
                logger.error("user_id_space_exhausted")
                return ev.RequestFailed(kind=RequestKind.CREATE_USER, message=str(e))
            return ev.UserCreated(user=user)

        if isinstance(effect, RequestTutorReply):
            try:
                text = await self.generator.chat(
                    effect.history,
                    effect.message,
                    effect.persona,
                    effect.target_language,
                    effect.native_language,
                    effect.level,
                    effect.last_topic,
                )
            except GenerationError as e:
                return ev.RequestFailed(kind=RequestKind.TUTOR_REPLY, message=str(e))
            return ev.TutorReplyReceived(text=text)

        if isinstance(effect, SaveProgress):
            user = self.store.update_user_progress(effect.user_id, effect.progress_delta, effect.chat_history)
            return ev.ProgressSaved(user=user)

        if isinstance(effect, RequestGameItem):
            try:
                item = await self.generator.generate_game_item(
                    effect.target_language,
                    effect.native_language,
                    effect.level,
                    effect.theme,
                    effect.prior_concept,
                )
            except GenerationError as e:
                return ev.RequestFailed(kind=RequestKind.GAME_ITEM, message=str(e))
            return ev.GameItemReceived(item=item)

        raise TypeError(f"unknown effect {effect!r}")
