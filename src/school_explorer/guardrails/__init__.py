"""Query guardrails: the prefilter that runs before any model call.

Public API
----------
- :func:`classify`: block or flag a raw query
- :class:`ClassificationResult`: result type
- :class:`RuleSet`, :class:`BlockRule`, :class:`FlagRule`: rule types
"""

from school_explorer.guardrails.models import BlockRule, ClassificationResult, FlagRule, RuleSet
from school_explorer.guardrails.prefilter import (
    DEFAULT_RULES,
    classify,
    get_block_rules,
    get_flag_rules,
)

__all__ = [
    "DEFAULT_RULES",
    "BlockRule",
    "ClassificationResult",
    "FlagRule",
    "RuleSet",
    "classify",
    "get_block_rules",
    "get_flag_rules",
]
