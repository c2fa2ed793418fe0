"""Structured payloads returned by the content generator."""

from pydantic import BaseModel, Field, model_validator

GAME_OPTION_COUNT = 4


class SafetyVerdict(BaseModel):
    is_safe: bool = True
    reason: str | None = None


class GameContent(BaseModel):
    """A single multiple-choice vocabulary question."""

    question: str
    options: list[str]
    correct_answer: str
    explanation: str
    concept: str
    category: str = Field(description="Broad topic name, never the answer word")

    @model_validator(mode="after")
    def _check_options(self) -> "GameContent":
        if len(self.options) != GAME_OPTION_COUNT:
            raise ValueError(f"expected {GAME_OPTION_COUNT} options, got {len(self.options)}")
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer must be one of the options")
        return self

    def is_correct(self, option: str) -> bool:
        return option == self.correct_answer
