"""Dataclass models for a dedup run.

Everything here is transient: built fresh per run, never persisted.
Known-side records carry an ``id``; incoming records usually don't.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date as _date

OUTCOME_UNIQUE = "unique"
OUTCOME_DUPLICATE = "duplicate"

TIER_DETERMINISTIC = "deterministic"
TIER_SEMANTIC = "semantic"
TIER_NONE = "none"

# Confidence reported for unique records
UNIQUE_NO_CANDIDATES = 1.0
UNIQUE_UNVERIFIED = 0.7
UNIQUE_VERIFIER_REJECTED = 0.6


def parse_iso_date(value: str | None) -> _date | None:
    """Return a date for a YYYY-MM-DD string, or None if missing/invalid."""
    if not value:
        return None
    try:
        return _date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


@dataclass
class TransactionRecord:
    """One side of a potential duplicate pair.

    CSV imports only fill description/amount/date. Bank-feed records may
    also carry the authorized and posted dates and a cleaner merchant label.
    """
    description: str
    amount: float | None   # signed: negative=outflow, positive=inflow
    date: str | None       # YYYY-MM-DD
    id: str | None = None
    authorized_date: str | None = None
    posted_date: str | None = None
    merchant_name: str | None = None

    def alternate_dates(self) -> list[str]:
        dates = []
        for d in (self.authorized_date, self.posted_date):
            if d and d != self.date and d not in dates:
                dates.append(d)
        return dates

    def has_amount(self) -> bool:
        if self.amount is None:
            return False
        try:
            return math.isfinite(float(self.amount))
        except (TypeError, ValueError):
            return False

    def is_indexable(self) -> bool:
        """False for records missing a usable date or amount."""
        return self.has_amount() and parse_iso_date(self.date) is not None


@dataclass
class MatchResult:
    """Classification of a single incoming record."""
    record: TransactionRecord
    outcome: str  # "unique" or "duplicate"
    confidence: float
    tier: str = TIER_NONE  # "deterministic", "semantic" or "none"
    matched: TransactionRecord | None = None
    unverified: bool = False  # had candidates but no verifier verdict

    @property
    def is_duplicate(self) -> bool:
        return self.outcome == OUTCOME_DUPLICATE


@dataclass
class DuplicateMatch:
    """An incoming record paired with the known record it duplicates."""
    record: TransactionRecord
    matched: TransactionRecord
    confidence: float
    tier: str


@dataclass
class RunStatistics:
    """Counters for one dedup run."""
    total: int = 0
    unique: int = 0
    duplicates: int = 0
    tier1_matches: int = 0
    tier2_matches: int = 0
    elapsed_ms: float = 0.0
    uncertain_pairs: int = 0
    batches_submitted: int = 0
    batches_failed: int = 0
    batches_skipped: int = 0
    skipped_known: int = 0  # known records without a usable date/amount
    degraded: bool = False


@dataclass
class RunResult:
    """Output shared by the deterministic-only and full pipeline modes."""
    unique: list[TransactionRecord] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    results: list[MatchResult] = field(default_factory=list)
    statistics: RunStatistics = field(default_factory=RunStatistics)
