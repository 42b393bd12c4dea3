"""Transaction deduplication across CSV imports and bank-feed syncs.

Usage:
    settings = load_settings()
    engine = DedupEngine(settings, verifier=ClaudeVerifier.from_settings(settings))
    preview = engine.find_duplicates_deterministic(incoming, known)
    result = await engine.find_duplicates(incoming, known)
"""

from txn_dedup.config import Config, DedupSettings, load_settings
from txn_dedup.engine import DedupEngine, RunCache, Tier1Pass
from txn_dedup.models import (
    DuplicateMatch,
    MatchResult,
    RunResult,
    RunStatistics,
    TransactionRecord,
)
from txn_dedup.verify.base import BaseVerifier, ReviewPair, Verdict, VerifierError
from txn_dedup.verify.claude import ClaudeVerifier

__all__ = [
    "BaseVerifier",
    "ClaudeVerifier",
    "Config",
    "DedupEngine",
    "DedupSettings",
    "DuplicateMatch",
    "MatchResult",
    "ReviewPair",
    "RunCache",
    "RunResult",
    "RunStatistics",
    "Tier1Pass",
    "TransactionRecord",
    "Verdict",
    "VerifierError",
    "load_settings",
]
