"""Two-tier deduplication engine for incoming transaction batches.

Stages (no retries, no backtracking):
1. Indexing: CandidateIndex over the known set, rebuilt every run
2. Tier 1: deterministic merchant matching per incoming record
3. Tier 2: batched semantic verification of records Tier 1 left
   unmatched but that do have candidates (full pipeline only)
4. Finalize: unique/duplicate lists plus run statistics

Tier 2 only ever adds matches: a Tier 1 acceptance is final, so the
deterministic preview and the full pipeline agree on every Tier 1 match.
Verifier outages degrade the run instead of failing it; a record whose
candidates never got a verdict is reported unique with ``unverified=True``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from txn_dedup.config import DedupSettings
from txn_dedup.matching.candidate_index import CandidateIndex, amount_key
from txn_dedup.matching.merchant import normalize_merchant
from txn_dedup.matching.tier1 import Tier1Matcher
from txn_dedup.models import (
    OUTCOME_DUPLICATE,
    OUTCOME_UNIQUE,
    TIER_DETERMINISTIC,
    TIER_SEMANTIC,
    UNIQUE_NO_CANDIDATES,
    UNIQUE_UNVERIFIED,
    UNIQUE_VERIFIER_REJECTED,
    DuplicateMatch,
    MatchResult,
    RunResult,
    RunStatistics,
    TransactionRecord,
)
from txn_dedup.verify.base import BaseVerifier, ReviewPair, Verdict
from txn_dedup.verify.batching import STATUS_FAILED, STATUS_SKIPPED, submit_batches

logger = logging.getLogger(__name__)


class RunCache:
    """Per-run memo shared by the stages of a single dedup call.

    Holds normalized merchant strings, verifier verdicts keyed by what the
    verifier actually sees, and (with exclusive matching) the known records
    already claimed. Never shared between runs.
    """

    def __init__(self, precision: int = 2):
        self.precision = precision
        self._merchants: dict[str, str] = {}
        self._verdicts: dict[tuple, Verdict] = {}
        self.consumed: set[int] = set()

    def merchant(self, text: str | None) -> str:
        key = text or ""
        cached = self._merchants.get(key)
        if cached is None:
            cached = normalize_merchant(key)
            self._merchants[key] = cached
        return cached

    def verdict_key(self, pair: ReviewPair) -> tuple:
        amount = amount_key(pair.amount, self.precision) if pair.amount is not None else ""
        return (pair.incoming_description, pair.candidate_description, amount, pair.date)

    def verdict_for(self, pair: ReviewPair) -> Verdict | None:
        return self._verdicts.get(self.verdict_key(pair))

    def store_verdict(self, pair: ReviewPair, verdict: Verdict) -> None:
        self._verdicts[self.verdict_key(pair)] = verdict

    def is_consumed(self, record: TransactionRecord) -> bool:
        return id(record) in self.consumed

    def consume(self, record: TransactionRecord) -> None:
        self.consumed.add(id(record))


@dataclass
class Tier1Pass:
    """Outcome of the deterministic stage.

    ``results`` has one entry per incoming record. Records awaiting Tier 2
    are provisionally unique and unverified; their review pairs are in
    ``pending``, keyed by position in the incoming batch. Tier 2 resolves
    into a copy of ``results``, so a pass always reflects Tier 1 alone.
    """
    results: list[MatchResult] = field(default_factory=list)
    pending: dict[int, list[ReviewPair]] = field(default_factory=dict)
    skipped_known: int = 0
    elapsed_ms: float = 0.0

    @property
    def definite_matches(self) -> list[DuplicateMatch]:
        return [_as_duplicate(r) for r in self.results if r.is_duplicate]

    @property
    def uncertain_pairs(self) -> list[ReviewPair]:
        return [pair for pos in sorted(self.pending) for pair in self.pending[pos]]

    @property
    def unique(self) -> list[TransactionRecord]:
        """Records with no candidates at all."""
        return [
            r.record for i, r in enumerate(self.results)
            if not r.is_duplicate and i not in self.pending
        ]


def _as_duplicate(result: MatchResult) -> DuplicateMatch:
    return DuplicateMatch(
        record=result.record,
        matched=result.matched,
        confidence=result.confidence,
        tier=result.tier,
    )


class DedupEngine:
    """Classify incoming records as unique or duplicates of known records."""

    def __init__(
        self,
        settings: DedupSettings | None = None,
        verifier: BaseVerifier | None = None,
    ):
        self.settings = settings or DedupSettings()
        self.verifier = verifier

    # ── Tier 1 ────────────────────────────────────────────

    def run_tier1(
        self,
        incoming: list[TransactionRecord],
        known: list[TransactionRecord],
        cache: RunCache | None = None,
        on_progress=None,
    ) -> Tier1Pass:
        """Build the index and run deterministic matching on every record.

        Args:
            incoming: Records to classify.
            known: Existing records, pre-scoped by the caller.
            cache: Run cache; a fresh one is created when omitted.
            on_progress: Optional callable (processed: int, total: int).
        """
        start = time.monotonic()
        s = self.settings
        cache = cache or RunCache(precision=s.amount_precision)
        index = CandidateIndex.build(
            known, window_days=s.window_days, precision=s.amount_precision,
        )
        matcher = Tier1Matcher(
            threshold=s.tier1_threshold,
            secondary_threshold=s.secondary_threshold,
            word_threshold=s.word_match_threshold,
            precision=s.amount_precision,
            normalize=cache.merchant,
        )

        tier1 = Tier1Pass(skipped_known=index.skipped_count)
        total = len(incoming)

        for pos, record in enumerate(incoming):
            candidates = index.lookup(record)
            if s.exclusive_matches:
                candidates = [c for c in candidates if not cache.is_consumed(c)]

            if not candidates:
                tier1.results.append(MatchResult(
                    record=record, outcome=OUTCOME_UNIQUE,
                    confidence=UNIQUE_NO_CANDIDATES,
                ))
            else:
                scan = matcher.first_match(record, candidates)
                if scan.matched is not None:
                    if s.exclusive_matches:
                        cache.consume(scan.matched)
                    tier1.results.append(MatchResult(
                        record=record, outcome=OUTCOME_DUPLICATE,
                        confidence=scan.score, tier=TIER_DETERMINISTIC,
                        matched=scan.matched,
                    ))
                else:
                    top = candidates[:s.max_candidates]
                    tier1.pending[pos] = [
                        ReviewPair(incoming=record, candidate=c, tier1_score=score)
                        for c, score in zip(top, scan.scores)
                    ]
                    tier1.results.append(MatchResult(
                        record=record, outcome=OUTCOME_UNIQUE,
                        confidence=UNIQUE_UNVERIFIED, unverified=True,
                    ))

            if on_progress is not None:
                on_progress(pos + 1, total)

        tier1.elapsed_ms = (time.monotonic() - start) * 1000
        return tier1

    # ── Entry points ──────────────────────────────────────

    def find_duplicates_deterministic(
        self,
        incoming: list[TransactionRecord],
        known: list[TransactionRecord],
        on_progress=None,
    ) -> RunResult:
        """Tier 1 only: synchronous, no external calls. Used for previews."""
        start = time.monotonic()
        tier1 = self.run_tier1(incoming, known, on_progress=on_progress)
        stats = RunStatistics(
            uncertain_pairs=len(tier1.uncertain_pairs),
            skipped_known=tier1.skipped_known,
            degraded=bool(tier1.pending),
        )
        return self._finalize(tier1.results, stats, start)

    async def find_duplicates(
        self,
        incoming: list[TransactionRecord],
        known: list[TransactionRecord],
        use_verifier: bool = True,
        timeout: float | None = None,
        on_progress=None,
    ) -> RunResult:
        """Full pipeline: Tier 1, then Tier 2 for records left uncertain.

        Args:
            incoming: Records to classify.
            known: Existing records, pre-scoped by the caller.
            use_verifier: False forces the Tier 1-only path.
            timeout: Seconds after which no further verifier batch is issued.
            on_progress: Optional callable (processed: int, total: int).

        Never raises for verifier problems: failed or skipped batches leave
        their records unique and unverified.
        """
        start = time.monotonic()
        deadline = start + timeout if timeout is not None else None
        cache = RunCache(precision=self.settings.amount_precision)

        tier1 = self.run_tier1(incoming, known, cache=cache, on_progress=on_progress)
        pairs = tier1.uncertain_pairs
        stats = RunStatistics(
            uncertain_pairs=len(pairs), skipped_known=tier1.skipped_known,
        )

        if not pairs:
            return self._finalize(tier1.results, stats, start)

        verifier = self.verifier
        if not use_verifier or verifier is None or not verifier.is_available():
            stats.degraded = True
            if use_verifier:
                logger.warning(
                    "Verifier unavailable, %d uncertain records left unverified",
                    len(tier1.pending),
                )
            return self._finalize(tier1.results, stats, start)

        results = await self._run_tier2(tier1, cache, verifier, stats, deadline)
        return self._finalize(results, stats, start)

    # ── Tier 2 ────────────────────────────────────────────

    async def _run_tier2(
        self,
        tier1: Tier1Pass,
        cache: RunCache,
        verifier: BaseVerifier,
        stats: RunStatistics,
        deadline: float | None,
    ) -> list[MatchResult]:
        """Resolve pending records from verifier verdicts.

        Returns a new result list; ``tier1`` is left as Tier 1 produced it.
        """
        # Identical pairs (repeated rows) are submitted once
        to_submit: list[ReviewPair] = []
        queued: set[tuple] = set()
        for pair in tier1.uncertain_pairs:
            key = cache.verdict_key(pair)
            if key not in queued:
                queued.add(key)
                to_submit.append(pair)

        outcomes = await submit_batches(
            verifier, to_submit, self.settings.batch_limit, deadline=deadline,
        )
        for outcome in outcomes:
            if outcome.status == STATUS_FAILED:
                stats.batches_failed += 1
            elif outcome.status == STATUS_SKIPPED:
                stats.batches_skipped += 1
            if outcome.status != STATUS_SKIPPED:
                stats.batches_submitted += 1
            if outcome.ok:
                for pair, verdict in zip(outcome.pairs, outcome.verdicts):
                    cache.store_verdict(pair, verdict)

        results = list(tier1.results)
        exclusive = self.settings.exclusive_matches
        for pos in sorted(tier1.pending):
            record_pairs = tier1.pending[pos]
            accepted: tuple[ReviewPair, Verdict] | None = None
            all_answered = True
            for pair in record_pairs:
                verdict = cache.verdict_for(pair)
                if verdict is None:
                    all_answered = False
                    continue
                if not verdict.accepted:
                    continue
                if exclusive and cache.is_consumed(pair.candidate):
                    continue
                accepted = (pair, verdict)
                break

            if accepted is not None:
                pair, verdict = accepted
                if exclusive:
                    cache.consume(pair.candidate)
                results[pos] = MatchResult(
                    record=pair.incoming, outcome=OUTCOME_DUPLICATE,
                    confidence=verdict.score, tier=TIER_SEMANTIC,
                    matched=pair.candidate,
                )
            elif all_answered:
                results[pos] = MatchResult(
                    record=record_pairs[0].incoming, outcome=OUTCOME_UNIQUE,
                    confidence=UNIQUE_VERIFIER_REJECTED,
                )

        return results

    # ── Finalize ──────────────────────────────────────────

    def _finalize(
        self,
        results: list[MatchResult],
        stats: RunStatistics,
        start: float,
    ) -> RunResult:
        unique = [r.record for r in results if not r.is_duplicate]
        duplicates = [_as_duplicate(r) for r in results if r.is_duplicate]

        stats.total = len(results)
        stats.unique = len(unique)
        stats.duplicates = len(duplicates)
        stats.tier1_matches = sum(1 for d in duplicates if d.tier == TIER_DETERMINISTIC)
        stats.tier2_matches = sum(1 for d in duplicates if d.tier == TIER_SEMANTIC)
        stats.elapsed_ms = (time.monotonic() - start) * 1000

        logger.info(
            "Dedup run: %d incoming, %d duplicates (tier1=%d, tier2=%d), %d unique%s",
            stats.total, stats.duplicates, stats.tier1_matches,
            stats.tier2_matches, stats.unique,
            " [degraded]" if stats.degraded else "",
        )
        return RunResult(
            unique=unique,
            duplicates=duplicates,
            results=list(results),
            statistics=stats,
        )
