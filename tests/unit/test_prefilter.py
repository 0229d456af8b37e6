"""Unit tests for the query prefilter and classification models."""

from __future__ import annotations

import pytest

from school_explorer.guardrails import (
    ClassificationResult,
    RuleSet,
    classify,
    get_block_rules,
    get_flag_rules,
)
from school_explorer.guardrails.models import BlockRule

# ---------------------------------------------------------------------------
# Block rules
# ---------------------------------------------------------------------------


class TestBlockRules:
    """Queries that must be answered with a reframe."""

    def test_ranking_blocked_with_reframe(self):
        """The canonical ranking request is blocked and the reframe mentions ranking."""
        result = classify("rank the best schools")
        assert result.blocked is True
        assert result.reframe
        assert "rank" in result.reframe.lower()
        assert result.flag is None

    @pytest.mark.parametrize(
        "query",
        [
            "Rank the top 10 schools in Queens",
            "which schools should I avoid in the Bronx?",
            "places to avoid for middle school",
            "schools with the lowest percentage of black students",
            "what is the worst school in Brooklyn",
            "list every failing school",
            "I want a school in a white neighborhood",
            "help me avoid that area",
            "how do I find segregated schools",
            "good neighborhood schools near me",
            "safe area school for my kid",
        ],
    )
    def test_harmful_queries_blocked(self, query):
        """Each block category is caught regardless of surrounding text."""
        result = classify(query)
        assert result.blocked is True
        assert result.reframe

    def test_case_insensitive(self):
        """Block patterns ignore case."""
        assert classify("WORST SCHOOL in the city").blocked is True

    def test_block_takes_precedence_over_flag(self):
        """A query matching both a block and a flag rule is blocked, not flagged."""
        result = classify("what is the best school and the worst school")
        assert result.blocked is True
        assert result.flag is None

    def test_first_matching_rule_wins(self):
        """Rules are evaluated in order and the first match supplies the reframe."""
        ranking, worst = get_block_rules()[0], get_block_rules()[3]
        assert ranking.name == "ranking"
        assert worst.name == "worst_school"
        result = classify("rank the worst schools, the worst school first")
        assert result.reframe == ranking.response


# ---------------------------------------------------------------------------
# Flag rules
# ---------------------------------------------------------------------------


class TestFlagRules:
    """Queries that proceed with clarifying context."""

    def test_best_school_flagged(self):
        """'best school' proceeds with a prepend note."""
        result = classify("what is the best school for science?")
        assert result.blocked is False
        assert result.flag is not None
        assert "Best" in result.flag

    @pytest.mark.parametrize(
        "query",
        [
            "does this prove that small schools work?",
            "is there evidence that attendance matters",
            "why do poor schools score lower",
            "are charter schools better?",
        ],
    )
    def test_flagged_queries(self, query):
        """Causation and comparison queries are flagged, not blocked."""
        result = classify(query)
        assert result.blocked is False
        assert result.flag

    def test_improve_is_not_a_proof_claim(self):
        """Word boundaries keep 'improve' from triggering the causation flag."""
        result = classify("how can schools improve attendance")
        assert result.blocked is False
        assert result.flag is None


# ---------------------------------------------------------------------------
# Allowed queries and edge cases
# ---------------------------------------------------------------------------


class TestAllowedQueries:
    """Queries that pass untouched."""

    def test_neutral_query_allowed(self):
        """A neutral exploration query is neither blocked nor flagged."""
        result = classify("show me high growth schools in Brooklyn")
        assert result == ClassificationResult(blocked=False)
        assert result.flag is None
        assert result.reframe is None

    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    def test_empty_or_whitespace_allowed(self, query):
        """Empty and whitespace-only queries are allowed without a flag."""
        result = classify(query)
        assert result.blocked is False
        assert result.flag is None

    def test_custom_rule_set(self):
        """An injected rule set replaces the defaults."""
        import re

        rules = RuleSet(
            block_rules=(BlockRule("test", re.compile("forbidden"), "Nope."),),
            flag_rules=(),
        )
        assert classify("forbidden topic", rules).reframe == "Nope."
        assert classify("rank the best schools", rules).blocked is False

    def test_rule_accessors(self):
        """Default rules are exposed in order and are non-empty."""
        assert [r.name for r in get_block_rules()][:2] == ["ranking", "schools_to_avoid"]
        assert len(get_flag_rules()) == 4


# ---------------------------------------------------------------------------
# ClassificationResult consistency
# ---------------------------------------------------------------------------


class TestClassificationResult:
    """The result model never combines blocked and flagged."""

    def test_blocked_and_flagged_rejected(self):
        with pytest.raises(ValueError):
            ClassificationResult(blocked=True, reframe="no", flag="note")

    def test_blocked_requires_reframe(self):
        with pytest.raises(ValueError):
            ClassificationResult(blocked=True)

    def test_constructors(self):
        assert ClassificationResult.allow().blocked is False
        assert ClassificationResult.block("r").reframe == "r"
        assert ClassificationResult.flagged("p").flag == "p"

    def test_to_dict_omits_empty_fields(self):
        assert ClassificationResult.allow().to_dict() == {"blocked": False}
