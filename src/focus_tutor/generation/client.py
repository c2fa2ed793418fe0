"""OpenAI-backed content generator: safety checks, persona, roadmap, games, chat."""

import json
from typing import Any

import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from focus_tutor.generation.prompts import (
    NEUTRAL_GOALS,
    NEUTRAL_INTERESTS,
    ONBOARDING_PROMPT,
    PERSONA_PROMPT,
    ROADMAP_PROMPT,
    SAFETY_PROMPT,
    build_game_prompt,
    build_tutor_prompt,
)
from focus_tutor.models.content import GameContent, SafetyVerdict
from focus_tutor.models.user import Message, Roadmap, TeacherPersona, UserPreferences

logger = structlog.get_logger()


class GenerationError(Exception):
    """The provider call failed or returned a payload that does not fit the schema."""


def _to_api_messages(history: list[Message]) -> list[dict[str, str]]:
    return [
        {"role": "assistant" if m.role == "model" else "user", "content": m.text}
        for m in history
    ]


class ContentGenerator:
    """Marshals domain requests into chat-completion calls.

    Args:
        api_key: OpenAI API key.
        model: Model used for generation and chat.
        safety_model: Model used for the safety classifier.
        timeout: Per-request timeout in seconds.
        client: Pre-built client (tests inject a mock here).
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        safety_model: str | None = None,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ):
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.safety_model = safety_model or model

    async def _complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.warning("generation_request_failed", error=str(e))
            raise GenerationError(str(e)) from e
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError("empty response from provider")
        return content

    async def _complete_json(self, prompt: str, *, model: str | None = None) -> dict[str, Any]:
        content = await self._complete(
            [{"role": "user", "content": prompt}], model=model, json_mode=True
        )
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("generation_bad_json", error=str(e))
            raise GenerationError(f"provider returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise GenerationError("provider returned a non-object JSON payload")
        return data

    async def check_content_safety(self, text: str) -> SafetyVerdict:
        """Classify text against the prohibited-topic list.

        Raises:
            GenerationError: Classifier unavailable or reply unparseable.
        """
        data = await self._complete_json(
            f"{SAFETY_PROMPT}\nText to analyze: {json.dumps(text)}",
            model=self.safety_model,
        )
        try:
            verdict = SafetyVerdict.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"malformed safety verdict: {e}") from e
        if verdict.is_safe:
            verdict.reason = None
        return verdict

    async def _is_clean(self, text: str) -> bool:
        if not text.strip():
            return True
        try:
            return (await self.check_content_safety(text)).is_safe
        except GenerationError:
            return True

    async def sanitize_preferences(self, prefs: UserPreferences) -> UserPreferences:
        """Replace disallowed free-text interests/goals with neutral defaults."""
        updates = {}
        if not await self._is_clean(prefs.interests):
            updates["interests"] = NEUTRAL_INTERESTS
        if not await self._is_clean(prefs.goals):
            updates["goals"] = NEUTRAL_GOALS
        if updates:
            logger.info("preferences_sanitized", fields=sorted(updates))
            return prefs.model_copy(update=updates)
        return prefs

    async def onboarding_reply(
        self,
        history: list[Message],
        message: str,
        known_interests: str | None = None,
    ) -> str:
        system = ONBOARDING_PROMPT.format(interests=known_interests or "Unknown")
        return await self._complete(
            [
                {"role": "system", "content": system},
                *_to_api_messages(history),
                {"role": "user", "content": message},
            ]
        )

    async def generate_persona(self, prefs: UserPreferences) -> TeacherPersona:
        clean = await self.sanitize_preferences(prefs)
        data = await self._complete_json(
            PERSONA_PROMPT.format(
                target_language=clean.target_language,
                interests=clean.interests or NEUTRAL_INTERESTS,
                goals=clean.goals or NEUTRAL_GOALS,
                learning_style=clean.learning_style or "balanced",
            )
        )
        try:
            persona = TeacherPersona.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"malformed persona: {e}") from e
        logger.info("persona_generated", name=persona.name)
        return persona

    async def generate_roadmap(self, prefs: UserPreferences) -> Roadmap:
        clean = await self.sanitize_preferences(prefs)
        data = await self._complete_json(
            ROADMAP_PROMPT.format(
                target_language=clean.target_language,
                level=clean.level,
                goals=clean.goals or NEUTRAL_GOALS,
                interests=clean.interests or NEUTRAL_INTERESTS,
            )
        )
        try:
            roadmap = Roadmap.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"malformed roadmap: {e}") from e
        logger.info("roadmap_generated", themes=[w.theme for w in roadmap.weeks])
        return roadmap

    async def generate_game_item(
        self,
        target_language: str,
        native_language: str,
        level: str,
        theme: str,
        prior_concept: str | None = None,
    ) -> GameContent:
        data = await self._complete_json(
            build_game_prompt(target_language, native_language, level, theme, prior_concept)
        )
        try:
            return GameContent.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"malformed game item: {e}") from e

    async def chat(
        self,
        history: list[Message],
        new_message: str,
        persona: TeacherPersona,
        target_language: str,
        native_language: str,
        level: str,
        last_topic: str | None = None,
    ) -> str:
        """Tutor reply to ``new_message``; ``history`` holds the turns before it."""
        system = build_tutor_prompt(persona, target_language, native_language, level, last_topic)
        return await self._complete(
            [
                {"role": "system", "content": system},
                *_to_api_messages(history),
                {"role": "user", "content": new_message},
            ]
        )
