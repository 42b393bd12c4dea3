"""Sequential batch submission for Tier 2.

Pairs are chunked to the service's per-request limit and submitted one batch
at a time, in order. Each batch yields a BatchOutcome: a failed batch is
logged and recorded, and the remaining batches still run. A caller deadline
is checked between batches only; an in-flight request is never interrupted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from txn_dedup.verify.base import BaseVerifier, ReviewPair, Verdict

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class BatchOutcome:
    """Result of one Tier 2 request."""
    index: int
    pairs: list[ReviewPair]
    status: str  # "ok", "failed" or "skipped"
    verdicts: list[Verdict] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def chunk(items: list, size: int) -> list[list]:
    """Split a list into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


async def submit_batches(
    verifier: BaseVerifier,
    pairs: list[ReviewPair],
    batch_size: int,
    deadline: float | None = None,
) -> list[BatchOutcome]:
    """Submit pairs in sequential batches and collect per-batch outcomes.

    Args:
        verifier: Tier 2 verifier.
        pairs: Pairs in submission order.
        batch_size: Requested batch size; capped at verifier.max_batch_size.
        deadline: time.monotonic() value after which no new batch is issued.
    """
    size = max(1, min(batch_size, verifier.max_batch_size))
    outcomes: list[BatchOutcome] = []

    for i, batch in enumerate(chunk(pairs, size)):
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(
                "Dedup deadline reached, skipping verifier batch %d (%d pairs)",
                i, len(batch),
            )
            outcomes.append(BatchOutcome(index=i, pairs=batch, status=STATUS_SKIPPED))
            continue

        logger.debug("Submitting verifier batch %d (%d pairs)", i, len(batch))
        try:
            verdicts = await verifier.verify(batch)
        except Exception as e:
            logger.exception("Verifier batch %d failed (%d pairs)", i, len(batch))
            outcomes.append(BatchOutcome(
                index=i, pairs=batch, status=STATUS_FAILED, error=str(e) or type(e).__name__,
            ))
            continue

        if len(verdicts) != len(batch):
            logger.error(
                "Verifier batch %d returned %d verdicts for %d pairs",
                i, len(verdicts), len(batch),
            )
            outcomes.append(BatchOutcome(
                index=i, pairs=batch, status=STATUS_FAILED,
                error=f"expected {len(batch)} verdicts, got {len(verdicts)}",
            ))
            continue

        outcomes.append(BatchOutcome(
            index=i, pairs=batch, status=STATUS_OK, verdicts=list(verdicts),
        ))

    return outcomes
