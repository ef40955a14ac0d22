"""
Deterministic matchers
"""

from .fuzzy import levenshtein, similarity_score, find_matches, build_suggestion, normalize_for_matching
from .ordinals import match_ordinal, match_ordinal_embedded, is_selection_shaped, normalize_ordinal_typos
from .classifiers import (
    resolve_scope_cue, is_explicit_command, is_stop_phrase, is_rejection,
    is_affirmation, canonicalize_command_input
)

__all__ = [
    'levenshtein', 'similarity_score', 'find_matches', 'build_suggestion', 'normalize_for_matching',
    'match_ordinal', 'match_ordinal_embedded', 'is_selection_shaped', 'normalize_ordinal_typos',
    'resolve_scope_cue', 'is_explicit_command', 'is_stop_phrase', 'is_rejection',
    'is_affirmation', 'canonicalize_command_input'
]
