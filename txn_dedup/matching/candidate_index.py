"""Date/amount index over the known transaction set.

Feeds timestamp the same purchase differently (authorization vs settlement),
so known records are indexed under every date they carry and lookups probe a
symmetric window around the incoming date. Amounts are matched exactly at a
fixed precision to keep candidate sets small.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from txn_dedup.models import TransactionRecord, parse_iso_date

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 2
DEFAULT_PRECISION = 2


def amount_key(amount: float, precision: int = DEFAULT_PRECISION) -> str:
    """Absolute amount as a fixed-precision string: -22.77 -> '22.77'."""
    return f"{abs(float(amount)):.{precision}f}"


def offset_date(date_str: str, days: int) -> str | None:
    """Shift a YYYY-MM-DD date by ``days``. None if the date is invalid."""
    parsed = parse_iso_date(date_str)
    if parsed is None:
        return None
    return (parsed + timedelta(days=days)).isoformat()


class CandidateIndex:
    """Lookup of known records keyed by (date, absolute amount).

    Attributes:
        skipped_count: Known records left out of the index because they lack
            a usable date or amount. They can never become candidates.
    """

    def __init__(
        self,
        window_days: int = DEFAULT_WINDOW_DAYS,
        precision: int = DEFAULT_PRECISION,
    ):
        self.window_days = window_days
        self.precision = precision
        self.skipped_count: int = 0
        self._buckets: dict[tuple[str, str], list[TransactionRecord]] = {}

    @classmethod
    def build(
        cls,
        known: list[TransactionRecord],
        window_days: int = DEFAULT_WINDOW_DAYS,
        precision: int = DEFAULT_PRECISION,
    ) -> CandidateIndex:
        index = cls(window_days=window_days, precision=precision)
        for record in known:
            index.add(record)
        if index.skipped_count:
            logger.debug(
                "Skipped %d known records without a usable date/amount",
                index.skipped_count,
            )
        return index

    def __len__(self) -> int:
        return len(self._buckets)

    def add(self, record: TransactionRecord) -> None:
        """Index a known record under its primary and alternate dates."""
        if not record.is_indexable():
            self.skipped_count += 1
            return
        amount = amount_key(record.amount, self.precision)
        for d in [record.date, *record.alternate_dates()]:
            parsed = parse_iso_date(d)
            if parsed is None:
                continue
            bucket = self._buckets.setdefault((parsed.isoformat(), amount), [])
            if not any(r is record for r in bucket):
                bucket.append(record)

    def lookup(self, record: TransactionRecord) -> list[TransactionRecord]:
        """Known records within the date window with the same amount.

        Offsets are probed from -window to +window; results keep bucket
        insertion order and each known record appears at most once.
        """
        if not record.is_indexable():
            return []
        amount = amount_key(record.amount, self.precision)
        candidates: list[TransactionRecord] = []
        seen: set[int] = set()
        for offset in range(-self.window_days, self.window_days + 1):
            probe = offset_date(record.date, offset)
            for match in self._buckets.get((probe, amount), ()):
                if id(match) not in seen:
                    seen.add(id(match))
                    candidates.append(match)
        return candidates
