"""Claude-backed Tier 2 verifier.

Sends a numbered list of uncertain pairs in one request and asks for a JSON
verdict per pair. Uses the same ``claude_fn`` callback pattern as the rest of
the codebase for testability: an async callable ``(system, prompt) -> str``.
"""

from __future__ import annotations

import json
import logging
import os

from txn_dedup.config import DEFAULT_CLAUDE_MODEL, DedupSettings
from txn_dedup.verify.base import (
    CONFIDENCE_LEVELS,
    BaseVerifier,
    ReviewPair,
    Verdict,
    VerifierError,
    VerifierResponseError,
    no_match,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a financial transaction deduplication expert. Decide whether each \
pair of transaction descriptions refers to the SAME merchant/business.

Context:
- The same merchant appears differently across banks and payment processors
- Wallet and processor prefixes (AplPay, SQ*, TST*, PAYPAL*) are not part of the merchant
- Ignore city/state suffixes, store numbers and reference IDs
- Bank feeds often carry clean merchant names, CSV statements carry raw descriptions

Matches:
- "AplPay CHIPOTLE 1249GAINESVILLE VA" = "Chipotle Mexican Grill"
- "TST* ROCKWOOD GAINESVILLE" = "Rockwood"
- "AWS" = "Amazon Web Services"

Non-matches:
- "CHIPOTLE 1249" != "Taco Bell" (different restaurants)
- "TARGET 1234" != "Walmart" (different stores)

Return ONLY a JSON object of the form:
{"matches": [{"pair_index": 1, "is_same_merchant": true, "confidence": "high"}]}
with one entry per pair, pair_index being the 1-based pair number and
confidence one of "high", "medium", "low". No other text."""


def build_prompt(pairs: list[ReviewPair]) -> str:
    """Render pairs as a numbered list for the user message."""
    blocks = []
    for i, pair in enumerate(pairs, start=1):
        lines = [
            f'{i}. New: "{pair.incoming_description}"',
            f'   Existing: "{pair.candidate_description}"',
        ]
        if pair.amount is not None:
            lines.append(f"   Amount: ${abs(pair.amount):.2f}")
        if pair.date:
            lines.append(f"   Date: {pair.date}")
        blocks.append("\n".join(lines))
    return (
        "Determine whether each pair refers to the same merchant:\n\n"
        + "\n\n".join(blocks)
    )


def parse_response(response: str, pair_count: int) -> list[Verdict]:
    """Parse Claude's JSON answer into verdicts ordered by pair number.

    Pairs the model skipped, and entries with an unknown confidence, count as
    low-confidence non-matches. Raises VerifierResponseError if the payload
    is not the expected JSON object.
    """
    text = response.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        text = "\n".join(lines)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise VerifierResponseError(
            f"Failed to parse verifier response: {text[:200]}"
        ) from e

    if not isinstance(data, dict) or not isinstance(data.get("matches"), list):
        raise VerifierResponseError(
            f"Verifier response has no 'matches' list: {type(data).__name__}"
        )

    by_index: dict[int, Verdict] = {}
    for entry in data["matches"]:
        if not isinstance(entry, dict):
            continue
        try:
            index = int(entry.get("pair_index"))
        except (TypeError, ValueError):
            logger.warning("Verifier entry without a usable pair_index: %s", entry)
            continue
        confidence = str(entry.get("confidence", "low")).lower()
        if confidence not in CONFIDENCE_LEVELS:
            logger.warning("Unknown verifier confidence '%s', treating as low", confidence)
            confidence = "low"
        if 1 <= index <= pair_count and index not in by_index:
            by_index[index] = Verdict(
                is_same_merchant=entry.get("is_same_merchant") is True,
                confidence=confidence,
                reasoning=str(entry.get("reasoning", "")),
            )

    return [
        by_index.get(i) or no_match("No result returned for this pair")
        for i in range(1, pair_count + 1)
    ]


class ClaudeVerifier(BaseVerifier):
    """Tier 2 verifier that asks Claude about a batch of pairs at once."""

    def __init__(self, claude_fn=None, max_batch_size: int = 100):
        self.claude_fn = claude_fn
        self.max_batch_size = max_batch_size

    @classmethod
    def from_env(cls, model: str | None = None, max_tokens: int = 2048) -> ClaudeVerifier:
        """Build a verifier from ANTHROPIC_API_KEY (unavailable if unset)."""
        return cls(claude_fn=make_claude_fn(model=model, max_tokens=max_tokens))

    @classmethod
    def from_settings(cls, settings: DedupSettings) -> ClaudeVerifier:
        """Build a verifier using the model and token limit from settings."""
        return cls.from_env(
            model=settings.claude_model, max_tokens=settings.claude_max_tokens,
        )

    def is_available(self) -> bool:
        return self.claude_fn is not None

    async def verify(self, pairs: list[ReviewPair]) -> list[Verdict]:
        if not pairs:
            return []
        if self.claude_fn is None:
            raise VerifierError("Claude verifier is not configured")
        if len(pairs) > self.max_batch_size:
            raise VerifierError(
                f"Batch of {len(pairs)} pairs exceeds limit of {self.max_batch_size}"
            )
        response = await self.claude_fn(SYSTEM_PROMPT, build_prompt(pairs))
        return parse_response(response, len(pairs))


def make_claude_fn(model: str | None = None, max_tokens: int = 2048):
    """Create an async Claude API callback for pair verification.

    Returns a coroutine function (system: str, prompt: str) -> str, or None
    if ANTHROPIC_API_KEY is not set.
    """
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        return None

    try:
        import anthropic

        client = anthropic.AsyncAnthropic(api_key=api_key)
        model_name = model or os.environ.get("DEDUP_CLAUDE_MODEL", DEFAULT_CLAUDE_MODEL)

        async def claude_fn(system: str, prompt: str) -> str:
            try:
                response = await client.messages.create(
                    model=model_name,
                    max_tokens=max_tokens,
                    system=system,
                    messages=[{"role": "user", "content": prompt}],
                )
            except anthropic.APIError as e:
                raise VerifierError(f"Claude request failed: {e}") from e
            return response.content[0].text

        return claude_fn
    except Exception as e:
        logger.warning("Claude API not available: %s", e)
        return None
