"""String similarity for merchant names.

Jaro-Winkler is the primary signal: it rewards shared prefixes and tolerates
truncation ("STARBUCKS" / "STARBUCKS COFFEE") and transpositions. Containment
and word overlap cover processor-decorated names where the merchant is a
substring of a longer token.
"""

from __future__ import annotations

import re

from rapidfuzz.distance import JaroWinkler

from txn_dedup.matching.merchant import normalize_merchant
from txn_dedup.models import TransactionRecord

PREFIX_WEIGHT = 0.1
CONTAINMENT_SCORE = 0.92
WORD_MATCH_THRESHOLD = 0.85


def jaro_winkler(a: str, b: str) -> float:
    """Case-insensitive Jaro-Winkler similarity in [0, 1]. Symmetric."""
    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return JaroWinkler.similarity(s1, s2, prefix_weight=PREFIX_WEIGHT)


def _containment_score(s1: str, s2: str) -> float:
    norm1 = re.sub(r"[^a-z0-9]", "", s1)
    norm2 = re.sub(r"[^a-z0-9]", "", s2)
    if len(norm1) < 4 or len(norm2) < 4:
        return 0.0
    if norm1 not in norm2 and norm2 not in norm1:
        return 0.0
    shorter = min(len(norm1), len(norm2))
    if shorter >= 5:
        # "mcdonalds" inside "doordashmcdonalds"
        return CONTAINMENT_SCORE
    return 0.7 + (shorter / max(len(norm1), len(norm2))) * 0.3


def _word_overlap_score(s1: str, s2: str, word_threshold: float) -> float:
    words1 = [w for w in s1.split() if len(w) >= 3]
    words2 = [w for w in s2.split() if len(w) >= 3]
    if not words1 or not words2:
        return 0.0
    matching = 0
    for w1 in words1:
        if any(jaro_winkler(w1, w2) >= word_threshold for w2 in words2):
            matching += 1
    return matching / max(len(words1), len(words2))


def combined_similarity(
    a: str,
    b: str,
    word_threshold: float = WORD_MATCH_THRESHOLD,
) -> float:
    """Best of Jaro-Winkler, containment and word overlap, in [0, 1]."""
    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return max(
        jaro_winkler(s1, s2),
        _containment_score(s1, s2),
        _word_overlap_score(s1, s2, word_threshold),
    )


def field_pairs(
    incoming: TransactionRecord,
    known: TransactionRecord,
) -> list[tuple[str, str]]:
    """Raw text combinations to compare for a pair of records.

    description<->description always; the incoming merchant label against
    the known description and the incoming description against the known
    merchant label when those labels exist.
    """
    pairs = [(incoming.description or "", known.description or "")]
    if incoming.merchant_name:
        pairs.append((incoming.merchant_name, known.description or ""))
    if known.merchant_name:
        pairs.append((incoming.description or "", known.merchant_name))
    return pairs


def best_field_similarity(
    incoming: TransactionRecord,
    known: TransactionRecord,
    word_threshold: float = WORD_MATCH_THRESHOLD,
    normalize=normalize_merchant,
) -> float:
    """Maximum combined similarity across every field combination.

    The two feeds label merchants inconsistently (one truncated, one
    processor-decorated), so the best cross-field score is used rather than
    tuning a threshold per field.
    """
    return max(
        combined_similarity(normalize(a), normalize(b), word_threshold)
        for a, b in field_pairs(incoming, known)
    )
