"""Tier 2 contract: semantic verification of uncertain pairs.

A verifier receives pairs that Tier 1 could not settle (same amount, close
date, dissimilar text) and answers, per pair, whether both descriptions name
the same merchant.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from txn_dedup.models import TransactionRecord

CONFIDENCE_LEVELS = ("low", "medium", "high")

# Numeric confidence reported for an accepted verdict
VERDICT_SCORES = {"high": 0.95, "medium": 0.85}


class VerifierError(Exception):
    """The verification service failed for a whole batch."""


class VerifierResponseError(VerifierError):
    """The service answered, but not in the expected shape."""


@dataclass
class ReviewPair:
    """An incoming record and one of its candidates, sent for review."""
    incoming: TransactionRecord
    candidate: TransactionRecord
    tier1_score: float = 0.0

    @property
    def incoming_description(self) -> str:
        return self.incoming.description or ""

    @property
    def candidate_description(self) -> str:
        return self.candidate.description or ""

    @property
    def amount(self) -> float | None:
        return self.incoming.amount

    @property
    def date(self) -> str | None:
        return self.incoming.date


@dataclass
class Verdict:
    """Verifier answer for a single pair."""
    is_same_merchant: bool
    confidence: str  # "low", "medium" or "high"
    reasoning: str = ""

    @property
    def accepted(self) -> bool:
        """Low confidence never counts as a match."""
        return self.is_same_merchant and self.confidence != "low"

    @property
    def score(self) -> float:
        if not self.accepted:
            return 0.0
        return VERDICT_SCORES[self.confidence]


def no_match(reasoning: str = "") -> Verdict:
    return Verdict(is_same_merchant=False, confidence="low", reasoning=reasoning)


class BaseVerifier(ABC):
    """Abstract base for Tier 2 verifiers.

    Attributes:
        max_batch_size: Most pairs the service accepts in one request.
    """

    max_batch_size: int = 100

    def is_available(self) -> bool:
        """Return False when the verifier is not configured."""
        return True

    @abstractmethod
    async def verify(self, pairs: list[ReviewPair]) -> list[Verdict]:
        """Return one verdict per pair, in the same order.

        Implementations raise VerifierError when the whole request fails.
        """
