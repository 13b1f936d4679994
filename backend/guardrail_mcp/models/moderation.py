"""Pydantic models for moderation verdicts."""

from enum import Enum

from pydantic import BaseModel


class Direction(str, Enum):
    """Which side of the conversation is being checked."""

    INPUT = "input"
    OUTPUT = "output"


class Verdict(str, Enum):
    PASS = "pass"
    BLOCK = "block"


class ModerationVerdict(BaseModel):
    """Classification returned by the moderation service."""

    verdict: Verdict
    score: float
    matched_category: str | None = None
    matched_category_label: str | None = None

    def to_text(self) -> str:
        """Render in the line format the guardrail tools return."""
        return (
            f"suggestion: {self.verdict.value}\n"
            f"score: {self.score:g}\n"
            f"label: {self.matched_category or ''}\n"
            f"labelName: {self.matched_category_label or ''}"
        )
