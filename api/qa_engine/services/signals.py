"""Content and author signals for the AQS calculator.

extract_content_signals() reads structure off the answer body: bullets,
paragraphs, worked examples, step-by-step instructions, domain vocabulary for
the question's category, and short generic non-answers. AuthorSignals carries
the author's track record on their other answers.
"""

import re
from dataclasses import dataclass
from typing import Optional

DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "tax": (
        "tax", "deduction", "deductible", "irs", "withholding", "filing", "return",
        "credit", "bracket", "vat", "audit", "refund",
    ),
    "accounting": (
        "ledger", "balance sheet", "accrual", "depreciation", "invoice", "journal",
        "reconcile", "bookkeeping", "gaap", "receivable", "payable", "amortization",
    ),
    "insurance": (
        "premium", "deductible", "policy", "coverage", "claim", "insurer",
        "beneficiary", "underwriting", "liability", "copay", "rider",
    ),
    "finance": (
        "budget", "interest", "loan", "mortgage", "credit score", "debt", "savings",
        "apr", "cash flow", "emergency fund", "principal",
    ),
    "investment": (
        "portfolio", "dividend", "stock", "bond", "etf", "index fund", "diversif",
        "yield", "capital gain", "asset allocation", "brokerage", "compound",
    ),
}

GENERIC_PHRASES = (
    "it depends",
    "hard to say",
    "depends on your situation",
    "consult a professional",
    "ask an expert",
    "good question",
    "not sure",
    "in my opinion",
    "you should check",
    "can't really say",
)

EXAMPLE_MARKERS = (
    "for example",
    "for instance",
    "e.g.",
    "example:",
    "suppose",
    "let's say",
    "imagine",
    "say you",
)

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+\S", re.MULTILINE)
_STEP = re.compile(
    r"\bstep\s*\d+\b|^\s*\d+[.)]\s+\S|\b(?:first|second|third|finally),",
    re.IGNORECASE | re.MULTILINE,
)

# Minimum distinct keywords for an answer to count as domain-specific
DOMAIN_KEYWORD_MIN = 2
# Generic phrases only mark an answer generic below this length
GENERIC_MAX_CHARS = 300


@dataclass(frozen=True)
class ContentSignals:
    has_bullets: bool = False
    has_paragraphs: bool = False
    has_example: bool = False
    has_steps: bool = False
    has_domain_keywords: bool = False
    is_generic: bool = False


@dataclass(frozen=True)
class AuthorSignals:
    """The author's record on their other visible answers."""

    other_answers: int = 0
    other_accepted: int = 0

    @property
    def acceptance_rate(self) -> float:
        if self.other_answers == 0:
            return 0.0
        return self.other_accepted / self.other_answers


def count_domain_keywords(body: str, category: Optional[str]) -> int:
    keywords = DOMAIN_KEYWORDS.get((category or "").lower(), ())
    text = body.lower()
    return sum(1 for keyword in keywords if keyword in text)


def extract_content_signals(body: str, category: Optional[str] = None) -> ContentSignals:
    text = body.lower()
    has_steps = bool(_STEP.search(body))
    has_example = any(marker in text for marker in EXAMPLE_MARKERS)
    is_generic = (
        any(phrase in text for phrase in GENERIC_PHRASES)
        and len(body) < GENERIC_MAX_CHARS
        and not has_steps
        and not has_example
    )
    return ContentSignals(
        has_bullets=bool(_BULLET.search(body)),
        has_paragraphs="\n\n" in body or body.count("\n") >= 2,
        has_example=has_example,
        has_steps=has_steps,
        has_domain_keywords=count_domain_keywords(body, category) >= DOMAIN_KEYWORD_MIN,
        is_generic=is_generic,
    )
