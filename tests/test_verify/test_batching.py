"""Tests for sequential Tier 2 batch submission."""

import asyncio
import time

import pytest

from txn_dedup.models import TransactionRecord
from txn_dedup.verify.base import BaseVerifier, ReviewPair, Verdict, VerifierError
from txn_dedup.verify.batching import (
    STATUS_FAILED,
    STATUS_OK,
    STATUS_SKIPPED,
    chunk,
    submit_batches,
)


class RecordingVerifier(BaseVerifier):
    """Accepts every pair; fails the batches whose index is listed."""

    def __init__(self, max_batch_size=100, fail_batches=(), short_batches=()):
        self.max_batch_size = max_batch_size
        self.fail_batches = set(fail_batches)
        self.short_batches = set(short_batches)
        self.calls: list[int] = []

    async def verify(self, pairs):
        call = len(self.calls)
        self.calls.append(len(pairs))
        if call in self.fail_batches:
            raise VerifierError("service unavailable")
        verdicts = [Verdict(is_same_merchant=True, confidence="high") for _ in pairs]
        if call in self.short_batches:
            return verdicts[:-1]
        return verdicts


def _pairs(n: int) -> list[ReviewPair]:
    return [
        ReviewPair(
            incoming=TransactionRecord(description=f"IN {i}", amount=-1.0, date="2025-01-15"),
            candidate=TransactionRecord(description=f"KNOWN {i}", amount=-1.0, date="2025-01-15"),
        )
        for i in range(n)
    ]


class TestChunk:
    def test_even_split(self):
        assert chunk([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_remainder(self):
        assert chunk([1, 2, 3], 2) == [[1, 2], [3]]

    def test_empty(self):
        assert chunk([], 5) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk([1], 0)


class TestSubmitBatches:
    def test_all_ok(self):
        verifier = RecordingVerifier()
        outcomes = asyncio.run(submit_batches(verifier, _pairs(5), batch_size=2))
        assert [o.status for o in outcomes] == [STATUS_OK] * 3
        assert verifier.calls == [2, 2, 1]
        assert sum(len(o.verdicts) for o in outcomes) == 5

    def test_size_capped_by_service_limit(self):
        verifier = RecordingVerifier(max_batch_size=3)
        asyncio.run(submit_batches(verifier, _pairs(7), batch_size=100))
        assert verifier.calls == [3, 3, 1]

    def test_failure_isolated_to_its_batch(self):
        verifier = RecordingVerifier(fail_batches={1})
        outcomes = asyncio.run(submit_batches(verifier, _pairs(3), batch_size=1))
        assert [o.status for o in outcomes] == [STATUS_OK, STATUS_FAILED, STATUS_OK]
        assert outcomes[1].error == "service unavailable"
        assert outcomes[1].verdicts == []
        assert len(verifier.calls) == 3

    def test_verdict_count_mismatch_fails_batch(self):
        verifier = RecordingVerifier(short_batches={0})
        outcomes = asyncio.run(submit_batches(verifier, _pairs(2), batch_size=2))
        assert outcomes[0].status == STATUS_FAILED
        assert "expected 2 verdicts" in outcomes[0].error

    def test_past_deadline_skips_everything(self):
        verifier = RecordingVerifier()
        outcomes = asyncio.run(submit_batches(
            verifier, _pairs(4), batch_size=2, deadline=time.monotonic() - 1,
        ))
        assert [o.status for o in outcomes] == [STATUS_SKIPPED, STATUS_SKIPPED]
        assert verifier.calls == []

    def test_outcomes_keep_submission_order(self):
        pairs = _pairs(4)
        outcomes = asyncio.run(submit_batches(RecordingVerifier(), pairs, batch_size=2))
        assert [o.index for o in outcomes] == [0, 1]
        assert outcomes[0].pairs == pairs[:2]
        assert outcomes[1].pairs == pairs[2:]

    def test_no_pairs(self):
        verifier = RecordingVerifier()
        assert asyncio.run(submit_batches(verifier, [], batch_size=10)) == []
        assert verifier.calls == []
