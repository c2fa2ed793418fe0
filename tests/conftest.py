"""Shared fixtures: sample records, an in-memory store and a mocked generator."""

import random
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from focus_tutor.generation.client import ContentGenerator
from focus_tutor.models.content import GameContent, SafetyVerdict
from focus_tutor.models.user import Roadmap, TeacherPersona, UserPreferences, WeeklyGoal
from focus_tutor.storage.local_storage import MemoryStorage
from focus_tutor.storage.record_store import RecordStore


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def prefs():
    return UserPreferences(
        native_language="English",
        target_language="German",
        level="Beginner (A1)",
        interests="Travel, Tech",
    )


@pytest.fixture
def persona():
    return TeacherPersona(
        name="Lena",
        age=31,
        personality="warm and curious",
        teaching_style="conversation first",
        catchphrase="Schritt für Schritt!",
        avatar_seed=417,
    )


@pytest.fixture
def roadmap():
    return Roadmap(
        weeks=[
            WeeklyGoal(week=i, theme=f"Theme {i}", focus=f"Focus {i}", activity=f"Activity {i}")
            for i in range(1, 5)
        ]
    )


@pytest.fixture
def game_item():
    return GameContent(
        question="How do you say 'Hello' in German?",
        options=["Hallo", "Tschüss", "Danke", "Bitte"],
        correct_answer="Hallo",
        explanation="'Hallo' is the everyday greeting.",
        concept="Hallo",
        category="Greetings",
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return RecordStore(storage, rng=random.Random(7), clock=clock)


@pytest.fixture
def generator(persona, roadmap, game_item):
    """ContentGenerator double: everything is safe and every call succeeds."""
    gen = MagicMock(spec=ContentGenerator)
    gen.check_content_safety.return_value = SafetyVerdict(is_safe=True)
    gen.onboarding_reply.return_value = "Great! How many minutes a day can you study?"
    gen.generate_persona.return_value = persona
    gen.generate_roadmap.return_value = roadmap
    gen.generate_game_item.return_value = game_item
    gen.chat.return_value = "Sehr gut! Let's keep going."
    return gen
