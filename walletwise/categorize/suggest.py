"""Keyword scoring: suggests a category for a free-text description.

Each category's score is the summed length of its keywords found in the
lowercased description, so specific (longer) keywords outweigh generic
ones.  Credits short-circuit to income or transfer before scoring.
"""

from __future__ import annotations

from walletwise.categorize.catalog import (
    INCOME,
    OTHER,
    TRANSFER,
    Category,
    CategoryCatalog,
)
from walletwise.database.models import Direction

# Substrings that mark a debit as an inter-wallet movement when no
# spending keyword matched.
TRANSFER_PATTERNS = ("transfer", "sent to", "send to", "instant pay", "received from")

_UNSCORED = frozenset({OTHER, INCOME, TRANSFER})

def score_category(description: str, category: Category) -> int:
    """Sum of keyword lengths for every keyword contained in description."""
    desc = description.lower()
    return sum(len(kw) for kw in category.keywords if kw.lower() in desc)


def suggest_category(
    description: str | None,
    transaction_type: str | None = None,
    catalog: CategoryCatalog | None = None,
) -> Category:
    """Return the best category for a transaction description.

    Deterministic and side-effect free.  Unknown transaction types are
    scored like debits.
    """
    catalog = catalog or CategoryCatalog.default()
    desc = (description or "").lower()
    transfer_cat = catalog.get_by_id(TRANSFER)

    if Direction.is_credit(transaction_type):
        if any(kw.lower() in desc for kw in transfer_cat.keywords):
            return transfer_cat
        return catalog.get_by_id(INCOME)

    best: Category | None = None
    best_score = 0
    for category in catalog:
        if category.id in _UNSCORED:
            continue
        score = score_category(desc, category)
        # Strict comparison: the first-declared category wins ties
        if score > best_score:
            best_score = score
            best = category

    if best is not None:
        return best

    if any(pattern in desc for pattern in TRANSFER_PATTERNS):
        return transfer_cat

    return catalog.get_default()
