"""
app/mappers/similarity.py

Normalized string similarity for header-to-field matching.
"""

from __future__ import annotations

import re

SUBSTRING_MATCH_SCORE = 0.9

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_token(value: str) -> str:
    """
    Lowercase and drop every non-alphanumeric character.
    """

    return _NON_ALNUM.sub("", value.lower())


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Minimum number of single-character insertions, deletions and
    substitutions needed to turn ``s1`` into ``s2``.
    """

    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def similarity(a: str, b: str) -> float:
    """
    Score two names in [0, 1].

    Containment is checked before edit distance so abbreviations and
    expansions ("email" / "email_address") are not under-scored.
    """

    s1 = normalize_token(a)
    s2 = normalize_token(b)

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return SUBSTRING_MATCH_SCORE

    distance = levenshtein_distance(s1, s2)
    return 1.0 - distance / max(len(s1), len(s2))
