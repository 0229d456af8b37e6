"""Process-wide daily budget for model token spend.

Tracks a running token total for the current calendar day and converts it to
an approximate USD cost. The total resets when the wall-clock date changes,
never on elapsed time, so long-running processes do not drift.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from school_explorer.logging import get_logger

log = get_logger("school_explorer.limits.budget")


@dataclass(frozen=True)
class BudgetStatus:
    """Snapshot of today's spend against the daily ceiling."""

    allowed: bool
    tokens_used: int
    estimated_cost: float
    budget_remaining: float


class DailyBudget:
    """Daily USD ceiling on model usage, shared by every request."""

    def __init__(
        self,
        daily_budget_usd: float = 50.0,
        cost_per_million_tokens: float = 3.0,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the budget.

        Args:
            daily_budget_usd: Spend ceiling per calendar day in USD.
            cost_per_million_tokens: Approximate USD cost per million tokens.
            today: Source of the current local date.
        """
        self._daily_budget = daily_budget_usd
        self._cost_per_million = cost_per_million_tokens
        self._today = today
        self._lock = threading.Lock()
        self._tokens_used_today = 0
        self._reset_date = today()
        self._exceeded_logged = False

    @property
    def daily_budget_usd(self) -> float:
        return self._daily_budget

    def check_daily_budget(self) -> BudgetStatus:
        """Report whether today's spend is still under the ceiling."""
        with self._lock:
            self._roll_over_locked()
            tokens = self._tokens_used_today

        estimated_cost = self.estimate_cost(tokens)
        remaining = self._daily_budget - estimated_cost
        return BudgetStatus(
            allowed=remaining > 0,
            tokens_used=tokens,
            estimated_cost=estimated_cost,
            budget_remaining=max(0.0, remaining),
        )

    def record_token_usage(self, input_tokens: int, output_tokens: int) -> None:
        """Add a call's token usage to today's total.

        Args:
            input_tokens: Prompt tokens consumed.
            output_tokens: Completion tokens produced.
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("Token counts must not be negative")

        with self._lock:
            self._roll_over_locked()
            self._tokens_used_today += input_tokens + output_tokens
            tokens = self._tokens_used_today
            crossed = (
                not self._exceeded_logged and self.estimate_cost(tokens) >= self._daily_budget
            )
            if crossed:
                self._exceeded_logged = True

        log.debug("token_usage_recorded", tokens_in=input_tokens, tokens_out=output_tokens)
        if crossed:
            log.warning(
                "daily_budget_exceeded",
                tokens_used=tokens,
                estimated_cost=round(self.estimate_cost(tokens), 4),
                budget_usd=self._daily_budget,
            )

    def estimate_cost(self, tokens: int) -> float:
        """Convert a token count to approximate USD."""
        return tokens / 1_000_000 * self._cost_per_million

    def _roll_over_locked(self) -> None:
        today = self._today()
        if today != self._reset_date:
            log.info(
                "daily_budget_reset",
                previous_date=self._reset_date.isoformat(),
                tokens_used=self._tokens_used_today,
            )
            self._tokens_used_today = 0
            self._reset_date = today
            self._exceeded_logged = False
