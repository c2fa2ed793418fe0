"""End-to-end session runs: real record store, mocked content generator."""

import asyncio
from unittest.mock import MagicMock

import pytest

from focus_tutor.generation.client import GenerationError
from focus_tutor.models.content import SafetyVerdict
from focus_tutor.session import events as ev
from focus_tutor.session.driver import SessionDriver
from focus_tutor.session.state import Screen
from focus_tutor.session.view import ViewScreen
from focus_tutor.storage.local_storage import StorageError

UNSAFE = SafetyVerdict(is_safe=False, reason="profanity")
SAFE = SafetyVerdict(is_safe=True)

SIGNUP = ev.SignupSubmitted(
    name="Alex",
    native_language="English",
    target_language="German",
    level="Beginner (A1)",
    interests="Travel, Tech",
)


@pytest.fixture
def driver(store, generator, clock):
    return SessionDriver(store, generator, clock=clock)


async def _onboard(driver):
    await driver.dispatch(SIGNUP)
    for text in ("I want to travel", "Twenty minutes a day", "That's all"):
        await driver.dispatch(ev.OnboardingMessageSubmitted(text=text))


class TestSignupFlow:
    async def test_full_signup_lands_on_home(self, driver, store, generator):
        await _onboard(driver)
        view = driver.view
        assert view.screen is ViewScreen.HOME
        assert view.show_nav is True
        assert view.account.name == "Alex"
        assert view.account.persona.name == "Lena"

        (stored,) = store.list_users()
        assert stored.id == view.account.id
        assert stored.preferences.interests == "Travel, Tech"
        assert stored.preferences.goals.startswith("model: Hi Alex!")
        assert generator.onboarding_reply.await_count == 2
        generator.generate_persona.assert_awaited_once()
        generator.generate_roadmap.assert_awaited_once()

    async def test_generation_failure_persists_nothing_then_retry_works(self, driver, store, generator, persona):
        generator.generate_persona.side_effect = GenerationError("timeout")
        await _onboard(driver)
        assert driver.view.screen is ViewScreen.GENERATING
        assert driver.view.can_retry is True
        assert store.list_users() == []

        generator.generate_persona.side_effect = None
        generator.generate_persona.return_value = persona
        result = await driver.dispatch(ev.Retry())
        assert result.rejected is None
        assert driver.view.screen is ViewScreen.HOME
        assert len(store.list_users()) == 1

    async def test_storage_failure_on_create_is_recoverable(self, driver, store, storage):
        real_set = storage.set_item
        storage.set_item = MagicMock(side_effect=StorageError("quota exceeded"))
        await _onboard(driver)
        assert driver.view.screen is ViewScreen.GENERATING
        assert driver.view.error == "We couldn't save your profile. Please try again."

        storage.set_item = real_set
        await driver.dispatch(ev.Retry())
        assert driver.view.screen is ViewScreen.HOME

    async def test_two_onboarding_violations_ban_the_device(self, driver, store, generator):
        await driver.dispatch(SIGNUP)
        generator.check_content_safety.return_value = UNSAFE

        await driver.dispatch(ev.OnboardingMessageSubmitted(text="bad"))
        assert driver.view.overlay == "warning"
        assert store.get_device_warnings() == 1
        await driver.dispatch(ev.DismissOverlay())

        await driver.dispatch(ev.OnboardingMessageSubmitted(text="worse"))
        assert driver.view.screen is ViewScreen.BAN
        assert store.is_device_banned() is True

        restarted = SessionDriver(store, generator)
        assert restarted.view.screen is ViewScreen.BAN
        result = await restarted.dispatch(SIGNUP)
        assert result.rejected == "banned"

    async def test_unsafe_signup_warns_without_a_device_strike(self, driver, store, generator):
        generator.check_content_safety.return_value = UNSAFE
        for _ in range(2):
            await driver.dispatch(SIGNUP)
            assert driver.view.overlay == "warning"
            await driver.dispatch(ev.DismissOverlay())

        assert driver.view.screen is ViewScreen.WELCOME
        assert store.get_device_warnings() == 0
        assert store.is_device_banned() is False


class TestTutorFlow:
    @pytest.fixture
    async def tutor(self, driver):
        await _onboard(driver)
        await driver.dispatch(ev.Navigate(target=Screen.TUTOR))
        return driver

    async def test_exchange_is_persisted(self, tutor, store, generator):
        await tutor.dispatch(ev.TutorMessageSubmitted(text="Wie geht's?"))
        user = store.list_users()[0]
        assert [m.role for m in user.chat_history] == ["model", "user", "model"]
        assert user.chat_history[-1].text == "Sehr gut! Let's keep going."
        assert user.progress.last_topic == "Wie geht's?"
        assert user.progress.xp == 10
        assert tutor.view.busy is False

        call = generator.chat.await_args
        assert call.args[1] == "Wie geht's?"
        assert [m.role for m in call.args[0]] == ["model"]

    async def test_classifier_outage_fails_open(self, tutor, store, generator):
        generator.check_content_safety.side_effect = GenerationError("provider down")
        await tutor.dispatch(ev.TutorMessageSubmitted(text="Hallo"))
        assert tutor.view.tutor[-1].text == "Sehr gut! Let's keep going."
        assert store.list_users()[0].warning_count == 0

    async def test_two_violations_ban_the_account(self, tutor, store, generator):
        generator.check_content_safety.return_value = UNSAFE
        await tutor.dispatch(ev.TutorMessageSubmitted(text="rude"))
        assert tutor.view.overlay == "warning"
        assert store.list_users()[0].warning_count == 1
        await tutor.dispatch(ev.DismissOverlay())

        await tutor.dispatch(ev.TutorMessageSubmitted(text="ruder"))
        user = store.list_users()[0]
        assert user.is_banned is True
        assert tutor.view.screen is ViewScreen.BAN
        assert tutor.view.banned_subject == user.id
        assert store.is_device_banned() is False

        result = await tutor.dispatch(ev.Navigate(target=Screen.HOME))
        assert result.rejected == "banned"
        generator.chat.assert_not_awaited()

    async def test_reply_failure_does_not_touch_storage(self, tutor, store, generator):
        generator.chat.side_effect = GenerationError("timeout")
        await tutor.dispatch(ev.TutorMessageSubmitted(text="Hallo"))
        assert tutor.view.can_retry is True
        assert store.list_users()[0].chat_history == []

        generator.chat.side_effect = None
        await tutor.dispatch(ev.Retry())
        assert len(store.list_users()[0].chat_history) == 3


class TestLoginAndGames:
    async def test_login_then_play(self, driver, store, generator, prefs, persona, roadmap, game_item):
        user = store.create_user("Alex", prefs, persona, roadmap)
        await driver.dispatch(ev.LoginRequested(name="  alex ", user_id=user.id))
        assert driver.view.screen is ViewScreen.HOME

        await driver.dispatch(ev.Navigate(target=Screen.GAMES))
        await driver.dispatch(ev.EnterGame(game_id="vocab_blast"))
        assert driver.view.screen is ViewScreen.IN_GAME
        assert driver.view.game.item == game_item

        await driver.dispatch(ev.AnswerSelected(option="Hallo"))
        await driver.dispatch(ev.NextQuestion())
        assert generator.generate_game_item.await_args.args[4] == "Hallo"

        await driver.dispatch(ev.ExitGame())
        assert driver.view.screen is ViewScreen.GAMES

    async def test_unknown_login(self, driver):
        await driver.dispatch(ev.LoginRequested(name="Nobody", user_id="123"))
        assert driver.view.screen is ViewScreen.WELCOME
        assert driver.view.error == "User not found."


class TestOneRequestAtATime:
    @pytest.fixture
    async def stalled_tutor(self, driver, generator):
        """Tutor session whose reply is held until ``release`` is set."""
        await _onboard(driver)
        await driver.dispatch(ev.Navigate(target=Screen.TUTOR))
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_chat(*args, **kwargs):
            started.set()
            await release.wait()
            return "Sehr gut!"

        generator.chat.side_effect = slow_chat
        pending = asyncio.create_task(driver.dispatch(ev.TutorMessageSubmitted(text="Hallo")))
        await started.wait()
        yield driver, pending, release
        release.set()
        await pending

    async def test_game_cannot_displace_pending_tutor_reply(self, stalled_tutor, store, generator):
        driver, pending, release = stalled_tutor

        nav = await driver.dispatch(ev.Navigate(target=Screen.GAMES))
        entered = await driver.dispatch(ev.EnterGame(game_id="vocab_blast"))
        assert nav.rejected is None
        assert entered.rejected == "a request is already in progress"
        assert driver.view.screen is ViewScreen.GAMES
        generator.generate_game_item.assert_not_awaited()

        release.set()
        await pending
        user = store.list_users()[0]
        assert [m.text for m in user.chat_history[-2:]] == ["Hallo", "Sehr gut!"]
        assert user.progress.xp == 10
        assert driver.view.busy is False

    async def test_second_message_refused_while_reply_pending(self, stalled_tutor, generator):
        driver, pending, release = stalled_tutor

        again = await driver.dispatch(ev.TutorMessageSubmitted(text="Hallo?"))
        assert again.rejected == "a request is already in progress"

        release.set()
        await pending
        generator.chat.assert_awaited_once()
        assert [line.text for line in driver.view.tutor][-2:] == ["Hallo", "Sehr gut!"]
