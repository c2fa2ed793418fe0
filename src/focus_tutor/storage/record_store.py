"""Durable store for user records and device-level moderation state."""

import random
from datetime import datetime
from typing import Any

import structlog

from focus_tutor.config import DEVICE_BANNED_KEY, DEVICE_WARNINGS_KEY, USERS_KEY
from focus_tutor.models.user import (
    DeviceState,
    Message,
    Roadmap,
    TeacherPersona,
    User,
    UserPreferences,
    UserProgress,
)
from focus_tutor.storage.local_storage import LocalStorage, StorageError

logger = structlog.get_logger()

ID_MIN = 1
ID_MAX = 100_000
ID_WIDTH = 3
RANDOM_ID_ATTEMPTS = 32


class IdSpaceExhausted(Exception):
    """Every account code in [ID_MIN, ID_MAX] is already allocated."""


def format_user_id(num: int) -> str:
    return str(num).zfill(ID_WIDTH)


class RecordStore:
    """Single source of truth for user and device state within one running app.

    Args:
        storage: Key-value backend (file-backed in the app, in-memory in tests).
        rng: Random source for account codes.
        clock: Returns the current time; used for last_session_date.
    """

    def __init__(
        self,
        storage: LocalStorage,
        rng: random.Random | None = None,
        clock=datetime.now,
    ):
        self._storage = storage
        self._rng = rng or random.Random()
        self._clock = clock
        self._users: list[User] = self._load()

    def _load(self) -> list[User]:
        raw = self._storage.get_item(USERS_KEY)
        if raw is None:
            return []
        try:
            return [User.model_validate(item) for item in raw]
        except (TypeError, ValueError) as e:
            logger.error("user_records_corrupt", error=str(e))
            raise StorageError(f"stored user records are unreadable: {e}") from e

    def _commit(self, users: list[User]) -> None:
        """Persist first, then swap the in-memory list, so a failed write changes nothing."""
        self._storage.set_item(USERS_KEY, [u.model_dump(mode="json") for u in users])
        self._users = users

    def _index_of(self, user_id: str) -> int | None:
        for i, user in enumerate(self._users):
            if user.id == user_id:
                return i
        return None

    def _generate_id(self) -> str:
        taken = {u.id for u in self._users}
        if len(taken) >= ID_MAX - ID_MIN + 1:
            raise IdSpaceExhausted("no account codes left")
        for _ in range(RANDOM_ID_ATTEMPTS):
            candidate = format_user_id(self._rng.randint(ID_MIN, ID_MAX))
            if candidate not in taken:
                return candidate
        # Crowded space: probe linearly from a random offset so allocation terminates.
        span = ID_MAX - ID_MIN + 1
        start = self._rng.randint(ID_MIN, ID_MAX)
        for step in range(span):
            candidate = format_user_id(ID_MIN + (start - ID_MIN + step) % span)
            if candidate not in taken:
                logger.info("user_id_probe_fallback", steps=step)
                return candidate
        raise IdSpaceExhausted("no account codes left")

    def create_user(
        self,
        name: str,
        preferences: UserPreferences,
        persona: TeacherPersona,
        roadmap: Roadmap,
    ) -> User:
        """Allocate a fresh account code and persist a new user.

        Raises:
            StorageError: The record could not be written.
            IdSpaceExhausted: No free account code remains.
        """
        user_id = self._generate_id()
        user = User(
            id=user_id,
            name=name.strip() or f"Student {user_id}",
            preferences=preferences,
            persona=persona,
            roadmap=roadmap,
            progress=UserProgress(last_session_date=self._clock()),
        )
        self._commit([*self._users, user])
        logger.info("user_created", user_id=user.id, name=user.name)
        return user.model_copy(deep=True)

    def get_user(self, user_id: str) -> User | None:
        index = self._index_of(user_id)
        if index is None:
            return None
        return self._users[index].model_copy(deep=True)

    def find_user_by_name_and_id(self, name: str, user_id: str) -> User | None:
        wanted = name.strip().lower()
        for user in self._users:
            if user.id == user_id and user.name.strip().lower() == wanted:
                return user.model_copy(deep=True)
        return None

    def update_user_progress(
        self,
        user_id: str,
        progress_delta: dict[str, Any],
        chat_history: list[Message] | None = None,
    ) -> User | None:
        """Merge progress fields and optionally replace the chat history.

        ``last_session_date`` is always refreshed. Returns None when the user
        does not exist or is banned (banned records are read-only).
        """
        index = self._index_of(user_id)
        if index is None:
            logger.warning("progress_update_user_not_found", user_id=user_id)
            return None
        current = self._users[index]
        if current.is_banned:
            logger.warning("progress_update_user_banned", user_id=user_id)
            return None

        merged = current.progress.model_dump()
        merged.update(progress_delta)
        merged["last_session_date"] = self._clock()
        updates: dict[str, Any] = {"progress": UserProgress.model_validate(merged)}
        if chat_history is not None:
            updates["chat_history"] = [m.model_copy() for m in chat_history]

        updated = current.model_copy(update=updates, deep=True)
        users = list(self._users)
        users[index] = updated
        self._commit(users)
        return updated.model_copy(deep=True)

    def update_user_safety(self, user_id: str, is_banned: bool, warning_count: int) -> User | None:
        index = self._index_of(user_id)
        if index is None:
            logger.warning("safety_update_user_not_found", user_id=user_id)
            return None
        current = self._users[index]
        # Bans are permanent; no path clears them.
        updated = current.model_copy(
            update={
                "is_banned": current.is_banned or is_banned,
                "warning_count": max(current.warning_count, warning_count),
            },
            deep=True,
        )
        users = list(self._users)
        users[index] = updated
        self._commit(users)
        logger.info(
            "user_safety_updated",
            user_id=user_id,
            is_banned=updated.is_banned,
            warning_count=updated.warning_count,
        )
        return updated.model_copy(deep=True)

    def list_users(self) -> list[User]:
        return [u.model_copy(deep=True) for u in self._users]

    def recent_users(self, limit: int = 3) -> list[User]:
        """Most recently created users first."""
        return [u.model_copy(deep=True) for u in reversed(self._users[-limit:])] if limit > 0 else []

    # --- device scope (before any account exists) ---

    def is_device_banned(self) -> bool:
        return self._storage.get_item(DEVICE_BANNED_KEY) is True

    def ban_device(self) -> None:
        self._storage.set_item(DEVICE_BANNED_KEY, True)
        logger.warning("device_banned")

    def get_device_warnings(self) -> int:
        value = self._storage.get_item(DEVICE_WARNINGS_KEY)
        return int(value) if value is not None else 0

    def increment_device_warnings(self) -> int:
        count = self.get_device_warnings() + 1
        self._storage.set_item(DEVICE_WARNINGS_KEY, count)
        return count

    def device_state(self) -> DeviceState:
        """Snapshot of the device-wide ban flag and warning counter."""
        return DeviceState(banned=self.is_device_banned(), warnings=self.get_device_warnings())
