# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Word-level edit distance helpers used when scoring alignments.
"""

from rapidfuzz.distance import Levenshtein


def levenshtein_distance(first: str, second: str, max_distance: int | None = None) -> int:
    """Number of single-character inserts, deletes and substitutions between two words.

    Args:
        first: First word
        second: Second word
        max_distance: Optional cutoff. Distances above it are reported as
            max_distance + 1, which lets the computation stop early.

    Returns:
        The edit distance (unit cost for every operation)
    """
    return Levenshtein.distance(first, second, score_cutoff=max_distance)


def word_similarity(spoken: str, scripted: str, max_distance: int) -> float:
    """Score how well a spoken word matches a script word.

    Exact matches score 1.0. Otherwise the words match only when the edit
    distance is within max_distance AND less than half the longer word
    (integer half, so three-letter words never match fuzzily), in
    which case the score is 1 - distance / longer_length. Anything else
    scores 0.0 and is not a match.

    Examples (max_distance=2):
        ("brown", "brown") -> 1.0
        ("quik", "quick") -> 0.8
        ("teh", "the") -> 0.0  (distance 2 is not below 3 // 2)
        ("cat", "bat") -> 0.0  (distance 1 is not below 3 // 2)
    """
    if spoken == scripted:
        return 1.0

    max_len: int = max(len(spoken), len(scripted))
    if max_len == 0:
        return 0.0

    distance: int = levenshtein_distance(spoken, scripted, max_distance)
    if distance <= max_distance and distance < max_len // 2:
        return 1.0 - distance / max_len
    return 0.0
