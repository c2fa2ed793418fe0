"""Two-strike moderation over an external safety classifier."""

from enum import StrEnum

import structlog
from pydantic import BaseModel

from focus_tutor.generation.client import ContentGenerator, GenerationError
from focus_tutor.models.content import SafetyVerdict
from focus_tutor.models.user import User
from focus_tutor.storage.record_store import RecordStore

logger = structlog.get_logger()

BAN_THRESHOLD = 2


class ModerationScope(StrEnum):
    DEVICE = "device"
    ACCOUNT = "account"


class ViolationOutcome(BaseModel):
    warnings: int
    should_ban: bool


def record_violation(scope: ModerationScope, prior_warnings: int) -> ViolationOutcome:
    """First violation in a scope warns, the second (or later) bans."""
    warnings = prior_warnings + 1
    outcome = ViolationOutcome(warnings=warnings, should_ban=warnings >= BAN_THRESHOLD)
    logger.info(
        "moderation_violation",
        scope=scope.value,
        warnings=outcome.warnings,
        should_ban=outcome.should_ban,
    )
    return outcome


class ModerationGate:
    """Screens user-authored text and turns violations into warning/ban state.

    Args:
        generator: Provides the safety classifier.
        store: Where device and account moderation state is written.
    """

    def __init__(self, generator: ContentGenerator, store: RecordStore):
        self.generator = generator
        self.store = store

    async def check_safety(self, text: str) -> SafetyVerdict:
        """Classify text; an unavailable classifier counts as a pass (fail-open)."""
        try:
            return await self.generator.check_content_safety(text)
        except GenerationError:
            logger.warning("safety_check_failed_open")
            return SafetyVerdict(is_safe=True)

    def apply_device_violation(self) -> ViolationOutcome:
        outcome = record_violation(ModerationScope.DEVICE, self.store.get_device_warnings())
        self.store.increment_device_warnings()
        if outcome.should_ban:
            self.store.ban_device()
        return outcome

    def apply_account_violation(self, user: User) -> tuple[ViolationOutcome, User | None]:
        """Returns the outcome and the stored record after the update (None if it vanished)."""
        outcome = record_violation(ModerationScope.ACCOUNT, user.warning_count)
        updated = self.store.update_user_safety(user.id, outcome.should_ban, outcome.warnings)
        return outcome, updated
