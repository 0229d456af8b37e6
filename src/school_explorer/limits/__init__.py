"""Rate and budget governance for model usage."""

from school_explorer.limits.budget import BudgetStatus, DailyBudget
from school_explorer.limits.rate_limiter import RateLimiter, RateLimitResult, RateWindow

__all__ = [
    "BudgetStatus",
    "DailyBudget",
    "RateLimitResult",
    "RateLimiter",
    "RateWindow",
]
