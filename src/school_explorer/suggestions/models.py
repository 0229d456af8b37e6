"""Data models for follow-up query suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

MAX_SUGGESTION_LENGTH = 80
MAX_SUGGESTIONS = 3


class SuggestionCategory(StrEnum):
    """What kind of follow-up a suggestion invites."""

    EXPLORE = "explore"
    COMPARE = "compare"
    EXPLAIN = "explain"
    VISUALIZE = "visualize"


@dataclass(frozen=True)
class SuggestedQuery:
    """A follow-up query offered to the user."""

    text: str
    category: SuggestionCategory

    def __post_init__(self) -> None:
        if len(self.text) > MAX_SUGGESTION_LENGTH:
            object.__setattr__(self, "text", self.text[:MAX_SUGGESTION_LENGTH])

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "category": self.category.value}


@dataclass
class ExtractedEntities:
    """Entities found in a turn's tool results."""

    schools: list[str] = field(default_factory=list)
    boroughs: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)
    analysis_types: set[str] = field(default_factory=set)

    @property
    def empty(self) -> bool:
        return not (self.schools or self.boroughs or self.metrics or self.analysis_types)
