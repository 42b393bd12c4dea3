"""Merchant normalization: raw bank description -> canonical merchant token.

Strips payment-processor prefixes, location tails, store numbers, masked
card fragments and domain suffixes so that

    "AplPay BURRITO BARN 1249RIVERDALE         XX"  -> "BURRITO BARN"
    "TST* STEAKHOUSE - RIRIVERDALE         XX"      -> "STEAKHOUSE"
    "Burrito Barn"                                   -> "BURRITO BARN"

Acronyms (AWS vs Amazon Web Services) are deliberately not expanded; the
semantic verifier handles those.
"""

from __future__ import annotations

import re

# Processor / wallet / channel prefixes. Order matters within one pass:
# longer variants come before the shorter ones they start with.
PREFIXES = (
    # Apple Pay
    "APLPAY", "APPLE PAY", "APL*PAY", "APPLEPAY",
    # Square
    "SQ *", "SQ*", "SQUARE *", "GOSQ.COM",
    # Toast
    "TST*", "TST *", "TOAST*",
    # Stripe / Shopify
    "SP ", "SP*", "STRIPE*", "SHOPIFY*",
    # PayPal / Venmo
    "PAYPAL *", "PAYPAL*", "PP*", "VENMO *", "VENMO*",
    # Card and transfer channels
    "POS PURCHASE", "POS DEBIT", "POS", "PURCHASE",
    "DEBIT CARD", "DEBIT", "CHECKCARD", "CHECK CARD",
    "ACH DEBIT", "ACH CREDIT", "ACH", "ELECTRONIC", "RECURRING",
    "AUTOPAY PAYMENT", "AUTOPAY", "AUTO PAY", "BILL PAY",
    "ONLINE", "INTERNET", "MOBILE PAYMENT", "MOBILE", "CONTACTLESS",
    "PAYMENT",
    # Marketplaces and delivery
    "AMZ*", "AMZN*", "AMAZON*", "GOOGLE *", "GOOGLE*", "GOOG*",
    "UBER *", "UBER*", "LYFT *", "LYFT*",
    "DD *", "DOORDASH*", "GRUBHUB*", "GH*", "INSTACART*",
    # Misc processors
    "CKE*", "CHK*", "WWW.", "HTTP://", "HTTPS://",
    "BT*", "FH*", "CL*", "CS *", "DNH*", "WWP*",
    # International
    "INTL", "FOREIGN",
    # Statement credits
    "AMEX RESY CREDIT", "AMEX DINING CREDIT", "MEM RWDS", "GLOBALREWARDS",
)

SUFFIXES = (
    "- THANK YOU", "THANK YOU", "PAYMENT RECEIVED", "APPROVED",
    "PAYROLL", "DIRECT DEPOSIT", "DIRECT DEP", "DIR DEP",
    "PPD", "WEB", "TEL", "CCD",
    "VISA", "MASTERCARD", "MC", "AMEX", "DISCOVER",
    "INC.", "INC", "LLC.", "LLC", "CORP.", "CORP", "CO.", "CO", "LTD.", "LTD",
)

US_STATES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA", "HI", "ID",
    "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS",
    "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK",
    "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV",
    "WI", "WY", "DC",
)

STOP_WORDS = frozenset({
    "the", "a", "an", "of", "and", "or", "in", "at", "to", "for", "on", "by",
})

MAX_WORDS = 4

# Drops the word before the state code too, taken as the city. A merchant
# name ending in a state-like word loses it: "TACO BELL IN" -> "TACO".
_STATE_RE = re.compile(r"\s+(?:[A-Z]+\s+)?(?:%s)\s*$" % "|".join(US_STATES))
_MASKED_CARD_RE = re.compile(
    r"\s*(?:CARD\s+(?:ENDING\s+(?:IN\s+)?)?|CARD\s*#\s*)?(?:\bX{2,}|\*{2,})[-\s]?\d{2,4}\b"
)
_CARD_ENDING_RE = re.compile(r"\s*\bCARD\s+ENDING\s+(?:IN\s+)?\d{2,4}\b")

# Applied in order after prefix/suffix/state removal
_TAIL_PATTERNS = (
    re.compile(r"\s+\d{3,}.*$"),                   # store numbers and what follows
    re.compile(r"\s+#?\d+\s*$"),                   # short store numbers
    re.compile(r"\s+\d{5}(?:-\d{4})?\s*$"),        # ZIP codes
    re.compile(r"\s+\(\d{3}\)\s*\d{3}-\d{4}\s*$"),  # phone numbers
    re.compile(r"\s+\d{3}-\d{3}-\d{4}\s*$"),
    re.compile(r"\s+[A-Z]{2,3}\d{5,}\s*$"),        # reference IDs
    re.compile(r"\s+ID:\s*\S+\s*$"),
    re.compile(r"\s+\S+\.(?:COM|NET|ORG|IO|CO)\S*\s*$"),  # domains
    re.compile(r"\s+-\d+\s*$"),                    # account fragments
)


def _strip_prefixes(text: str) -> str:
    for prefix in PREFIXES:
        if not text.startswith(prefix):
            continue
        # "POS" must not eat the start of "POSTMATES"
        if prefix[-1].isalnum() and text[len(prefix):len(prefix) + 1].isalnum():
            continue
        rest = text[len(prefix):].strip()
        if rest:
            text = rest
    return text


def _strip_suffixes(text: str) -> str:
    for suffix in SUFFIXES:
        if text == suffix:
            continue
        if text.endswith(" " + suffix):
            text = text[:-(len(suffix) + 1)].strip()
    return text


def _clean_once(text: str) -> str:
    text = _CARD_ENDING_RE.sub("", text)
    text = _MASKED_CARD_RE.sub("", text)
    text = _strip_prefixes(text)
    text = _strip_suffixes(text)
    text = _STATE_RE.sub("", text)
    for pattern in _TAIL_PATTERNS:
        text = pattern.sub("", text)
    text = re.sub(r"[*#/]+", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    words = text.split(" ")
    if len(words) > MAX_WORDS:
        text = " ".join(words[:MAX_WORDS])
    text = re.sub(r"[-,.:;]+$", "", text).strip()
    return text


def normalize_merchant(description: str | None) -> str:
    """Return the canonical merchant token for a transaction description.

    Upper-cases, collapses whitespace and removes known noise. The cleaning
    pass only ever shortens the text and is repeated until nothing changes,
    so normalizing an already-normalized string is a no-op.
    """
    if not description:
        return ""
    text = re.sub(r"\s+", " ", description.upper()).strip()
    while True:
        cleaned = _clean_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned


def merchant_tokens(description: str | None) -> list[str]:
    """Meaningful lower-case tokens of the normalized merchant name."""
    tokens = []
    for word in normalize_merchant(description).lower().split():
        if len(word) < 3 or word in STOP_WORDS:
            continue
        word = re.sub(r"[^a-z0-9]", "", word)
        if len(word) >= 3:
            tokens.append(word)
    return tokens


def has_significant_token_overlap(desc_a: str | None, desc_b: str | None) -> bool:
    """Return True if two descriptions share most of their merchant tokens.

    Exact shared tokens count once each; tokens of 4+ chars where one
    contains the other ("MCDONALDS" / "DOORDASHMCDONALDS") count as well.
    Requires at least one overlap, and either half of the smaller token set
    or two overlaps in total.
    """
    tokens_a = merchant_tokens(desc_a)
    tokens_b = merchant_tokens(desc_b)
    if not tokens_a or not tokens_b:
        return False

    set_b = set(tokens_b)
    overlap = sum(1 for t in set(tokens_a) if t in set_b)

    for t1 in tokens_a:
        for t2 in tokens_b:
            if len(t1) >= 4 and len(t2) >= 4 and (t1 in t2 or t2 in t1):
                overlap += 1

    min_tokens = min(len(tokens_a), len(tokens_b))
    return overlap >= 1 and (overlap >= min_tokens * 0.5 or overlap >= 2)
