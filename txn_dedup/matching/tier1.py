"""Tier 1: deterministic merchant matching.

Rules (evaluated per candidate):
1. Amount guard: absolute amounts must agree at the index precision.
2. Primary: best cross-field combined similarity >= 0.88.
3. Secondary: raw descriptions share most meaningful tokens AND the raw
   Jaro-Winkler of the normalized merchants is >= 0.75. Merchant extraction
   sometimes over-strips distinctive tokens; the token corroboration keeps
   the lower bar from producing false positives.

Candidates are tried in index insertion order and the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from txn_dedup.matching.candidate_index import DEFAULT_PRECISION, amount_key
from txn_dedup.matching.merchant import has_significant_token_overlap, normalize_merchant
from txn_dedup.matching.similarity import (
    WORD_MATCH_THRESHOLD,
    combined_similarity,
    field_pairs,
    jaro_winkler,
)
from txn_dedup.models import TransactionRecord

TIER1_THRESHOLD = 0.88
SECONDARY_THRESHOLD = 0.75


@dataclass
class Tier1Decision:
    """Outcome of comparing one incoming record with one candidate."""
    is_match: bool
    score: float


@dataclass
class Tier1Scan:
    """Result of scanning an incoming record's candidate list.

    ``score`` is the accepted candidate's score, or the best score seen when
    nothing matched. ``scores`` lines up with the candidates scanned.
    """
    matched: TransactionRecord | None = None
    score: float = 0.0
    scores: list[float] = field(default_factory=list)


def amounts_agree(
    a: TransactionRecord, b: TransactionRecord, precision: int = DEFAULT_PRECISION
) -> bool:
    if not a.has_amount() or not b.has_amount():
        return False
    return amount_key(a.amount, precision) == amount_key(b.amount, precision)


class Tier1Matcher:
    """Applies the deterministic rules with configurable thresholds."""

    def __init__(
        self,
        threshold: float = TIER1_THRESHOLD,
        secondary_threshold: float = SECONDARY_THRESHOLD,
        word_threshold: float = WORD_MATCH_THRESHOLD,
        precision: int = DEFAULT_PRECISION,
        normalize=normalize_merchant,
    ):
        self.threshold = threshold
        self.secondary_threshold = secondary_threshold
        self.word_threshold = word_threshold
        self.precision = precision
        self.normalize = normalize

    def match(
        self, incoming: TransactionRecord, candidate: TransactionRecord
    ) -> Tier1Decision:
        if not amounts_agree(incoming, candidate, self.precision):
            return Tier1Decision(is_match=False, score=0.0)

        texts = field_pairs(incoming, candidate)
        normalized = [(self.normalize(a), self.normalize(b)) for a, b in texts]

        score = 0.0
        for a, b in normalized:
            pair_score = combined_similarity(a, b, self.word_threshold)
            if pair_score >= self.threshold:
                return Tier1Decision(is_match=True, score=pair_score)
            score = max(score, pair_score)

        for (raw_a, raw_b), (a, b) in zip(texts, normalized):
            if not has_significant_token_overlap(raw_a, raw_b):
                continue
            raw_score = jaro_winkler(a, b)
            if raw_score >= self.secondary_threshold:
                return Tier1Decision(is_match=True, score=max(score, raw_score))

        return Tier1Decision(is_match=False, score=score)

    def first_match(
        self,
        incoming: TransactionRecord,
        candidates: list[TransactionRecord],
    ) -> Tier1Scan:
        """Scan candidates in order and stop at the first accepted one.

        No re-ranking: when several candidates clear the bar, the earliest in
        index insertion order wins.
        """
        scan = Tier1Scan()
        for candidate in candidates:
            decision = self.match(incoming, candidate)
            scan.scores.append(decision.score)
            if decision.is_match:
                scan.matched = candidate
                scan.score = decision.score
                return scan
            scan.score = max(scan.score, decision.score)
        return scan


def tier1_match(
    incoming: TransactionRecord, candidate: TransactionRecord
) -> Tier1Decision:
    """Compare a pair with the default thresholds."""
    return Tier1Matcher().match(incoming, candidate)
