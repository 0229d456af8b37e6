"""Data models for the query prefilter."""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of running a query through the prefilter.

    Either ``blocked`` with a canned ``reframe``, or allowed with an optional
    ``flag`` string to prepend to the eventual answer. Never both.
    """

    blocked: bool
    reframe: str | None = None
    flag: str | None = None

    def __post_init__(self) -> None:
        if self.blocked and self.flag is not None:
            raise ValueError("A blocked result cannot also carry a flag")
        if self.blocked and not self.reframe:
            raise ValueError("A blocked result requires a reframe")
        if not self.blocked and self.reframe is not None:
            raise ValueError("Only blocked results carry a reframe")

    @classmethod
    def allow(cls) -> ClassificationResult:
        return cls(blocked=False)

    @classmethod
    def block(cls, reframe: str) -> ClassificationResult:
        return cls(blocked=True, reframe=reframe)

    @classmethod
    def flagged(cls, prepend: str) -> ClassificationResult:
        return cls(blocked=False, flag=prepend)

    def to_dict(self) -> dict[str, object]:
        """Serialise without the unset optional fields."""
        data: dict[str, object] = {"blocked": self.blocked}
        if self.reframe is not None:
            data["reframe"] = self.reframe
        if self.flag is not None:
            data["flag"] = self.flag
        return data


@dataclass(frozen=True)
class BlockRule:
    """Hard block: the query is answered with ``response`` and goes no further."""

    name: str
    pattern: re.Pattern[str]
    response: str


@dataclass(frozen=True)
class FlagRule:
    """Soft flag: the query proceeds, ``prepend`` is prefixed to the answer."""

    name: str
    pattern: re.Pattern[str]
    prepend: str


@dataclass(frozen=True)
class RuleSet:
    """Ordered block and flag rules. Block rules are always evaluated first."""

    block_rules: tuple[BlockRule, ...]
    flag_rules: tuple[FlagRule, ...]
