"""Query prefilter: block or flag harmful query patterns before any model call.

All checks are synchronous, side-effect free and run in ~0ms. Block rules are
evaluated first in fixed order (first match wins); flag rules run only when no
block rule matched. Patterns search within bounded character windows rather
than matching the whole query, so surrounding context does not defeat them.
"""

from __future__ import annotations

import re

from school_explorer.guardrails.models import BlockRule, ClassificationResult, FlagRule, RuleSet
from school_explorer.logging import get_logger

log = get_logger("school_explorer.guardrails.prefilter")

# ---------------------------------------------------------------------------
# Hard block rules: answered with a canned reframe, no model call is made
# ---------------------------------------------------------------------------

_BLOCK_RULES: tuple[BlockRule, ...] = (
    BlockRule(
        name="ranking",
        pattern=re.compile(r"rank.{0,20}(?:best|worst|top|bottom).{0,20}school", re.IGNORECASE),
        response=(
            "I can't rank schools 'best to worst' because school quality depends on what "
            "you're looking for. I can help you find schools with high student growth, "
            "strong programs, or specific characteristics. What matters most to you?"
        ),
    ),
    BlockRule(
        name="schools_to_avoid",
        pattern=re.compile(r"(?:schools?|places?).{0,15}(?:to\s+)?avoid", re.IGNORECASE),
        response=(
            "I don't identify schools to 'avoid' because that framing can harm communities. "
            "I can help you understand what different schools offer and find ones that match "
            "criteria you value. What are you looking for?"
        ),
    ),
    BlockRule(
        name="demographic_filtering",
        pattern=re.compile(
            r"(?:lowest?|fewest?|least|highest?|most).{0,10}(?:percent|%|percentage)"
            r".{0,10}(?:black|white|hispanic|latino|asian|african)",
            re.IGNORECASE,
        ),
        response=(
            "I can't filter schools by demographic percentages as that can enable "
            "discriminatory school selection. I can help you explore schools by educational "
            "characteristics: programs, growth metrics, size, location. What aspects "
            "interest you?"
        ),
    ),
    BlockRule(
        name="worst_school",
        pattern=re.compile(r"worst\s+school", re.IGNORECASE),
        response=(
            "I don't label schools as 'worst.' Schools serving high-poverty communities face "
            "systemic challenges that test scores reflect. I can help you understand what "
            "factors affect outcomes or find schools with specific characteristics. What "
            "would be helpful?"
        ),
    ),
    BlockRule(
        name="failing_school",
        pattern=re.compile(r"(?:failing|failed)\s+school", re.IGNORECASE),
        response=(
            "I avoid the term 'failing schools' because it can stigmatize communities facing "
            "systemic challenges. I can help you explore schools that need support and the "
            "factors affecting their outcomes. What would you like to understand?"
        ),
    ),
    BlockRule(
        name="segregation",
        pattern=re.compile(
            r"segregat|white.{0,30}neighbou?rhood|avoid.{0,30}\barea", re.IGNORECASE
        ),
        response=(
            "I can't help with queries that may reinforce segregation patterns. I can help "
            "you explore schools by educational programs, student growth, and other "
            "characteristics. What matters to you in a school?"
        ),
    ),
    BlockRule(
        name="neighborhood_bias",
        pattern=re.compile(r"(?:good|safe)\s+(?:neighbou?rhood|area)\s+school", re.IGNORECASE),
        response=(
            "I focus on educational characteristics rather than neighborhood perceptions, "
            "which can reflect biased assumptions. I can help you find schools with strong "
            "student growth, family satisfaction, or specific programs. What educational "
            "qualities are you looking for?"
        ),
    ),
)

# ---------------------------------------------------------------------------
# Soft flag rules: the query proceeds with clarifying context prepended
# ---------------------------------------------------------------------------

_FLAG_RULES: tuple[FlagRule, ...] = (
    FlagRule(
        name="best_school",
        pattern=re.compile(r"best\s+school", re.IGNORECASE),
        prepend=(
            "Note: 'Best' depends on what you're looking for: student growth, programs, "
            "size, or location. I'll help you explore options based on specific criteria.\n\n"
        ),
    ),
    FlagRule(
        name="causal_proof",
        pattern=re.compile(r"\bprov(?:e|es|ing)\b|\bproof\b|\bevidence\s+that", re.IGNORECASE),
        prepend=(
            "Note: This data can show patterns and correlations, but cannot prove causation. "
            "I'll share what we can observe.\n\n"
        ),
    ),
    FlagRule(
        name="poverty_causation",
        pattern=re.compile(
            r"why\s+(?:do|does|are)\s+(?:poor|low.income|poverty)", re.IGNORECASE
        ),
        prepend=(
            "Note: Questions about poverty and school outcomes involve systemic factors. "
            "I'll share what the data shows alongside important context.\n\n"
        ),
    ),
    FlagRule(
        name="charter_comparison",
        pattern=re.compile(r"charter.{0,30}better|better.{0,30}charter", re.IGNORECASE),
        prepend=(
            "Note: Charter vs. traditional public comparisons require careful context. "
            "Selection effects, different resources, and data gaps make direct comparisons "
            "difficult. I'll share what we can observe.\n\n"
        ),
    ),
)

DEFAULT_RULES = RuleSet(block_rules=_BLOCK_RULES, flag_rules=_FLAG_RULES)


def classify(query: str, rules: RuleSet = DEFAULT_RULES) -> ClassificationResult:
    """Check whether a query should be blocked or flagged.

    Args:
        query: The raw user query.
        rules: Rule set to apply (defaults to the process-wide rules).

    Returns:
        A :class:`ClassificationResult`. Empty or whitespace-only queries are
        always allowed without a flag.
    """
    if not query or not query.strip():
        return ClassificationResult.allow()

    for block_rule in rules.block_rules:
        if block_rule.pattern.search(query):
            log.info("prefilter_blocked", rule=block_rule.name)
            return ClassificationResult.block(block_rule.response)

    for flag_rule in rules.flag_rules:
        if flag_rule.pattern.search(query):
            log.debug("prefilter_flagged", rule=flag_rule.name)
            return ClassificationResult.flagged(flag_rule.prepend)

    return ClassificationResult.allow()


def get_block_rules() -> tuple[BlockRule, ...]:
    """Return the default block rules (for tests and tooling)."""
    return DEFAULT_RULES.block_rules


def get_flag_rules() -> tuple[FlagRule, ...]:
    """Return the default flag rules (for tests and tooling)."""
    return DEFAULT_RULES.flag_rules
