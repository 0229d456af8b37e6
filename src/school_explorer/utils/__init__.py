"""Utility helpers (fuzzy matching, text handling)."""

from school_explorer.utils.fuzzy import FuzzyMatch, find_fuzzy_matches, levenshtein_distance
from school_explorer.utils.text import extract_json_object, sanitize_for_spreadsheet, truncate

__all__ = [
    "FuzzyMatch",
    "extract_json_object",
    "find_fuzzy_matches",
    "levenshtein_distance",
    "sanitize_for_spreadsheet",
    "truncate",
]
