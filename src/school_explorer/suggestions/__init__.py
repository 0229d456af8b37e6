"""Follow-up query suggestions (LLM generator, validator and fallback)."""

from school_explorer.suggestions.fallback import (
    DEFAULT_SUGGESTIONS,
    extract_entities,
    generate_fallback,
)
from school_explorer.suggestions.generator import (
    SuggestionGenerator,
    parse_suggestions,
    validate_suggestions,
)
from school_explorer.suggestions.models import (
    ExtractedEntities,
    SuggestedQuery,
    SuggestionCategory,
)

__all__ = [
    "DEFAULT_SUGGESTIONS",
    "ExtractedEntities",
    "SuggestedQuery",
    "SuggestionCategory",
    "SuggestionGenerator",
    "extract_entities",
    "generate_fallback",
    "parse_suggestions",
    "validate_suggestions",
]
