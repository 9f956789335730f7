"""Quote comparator — prices each competing quote against the expiring policy.

For every quote the comparator computes

    price_change = (quote_premium - expiring_premium) / expiring_premium * 100

and leaves it ``None`` when the expiring premium is zero or negative.  Across
the set it reports the lowest, highest, and mean premium and the best-value
quote, which is simply the cheapest one (the first cheapest, in the order the
quotes were given).  Pure: nothing is read from or written to a store.
"""

from __future__ import annotations

import logging
import statistics
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from renewdesk.models import Quote

logger = logging.getLogger("renewdesk.quotes.comparator")


class ComparedQuote(BaseModel):
    """One quote with its price movement against the expiring premium."""

    quote: Quote
    price_change: Optional[float] = None


class QuoteComparison(BaseModel):
    """Side-by-side metrics for one renewal's quotes.

    Attributes:
        expiring_premium: Premium of the policy being replaced.
        quotes: Each quote with its computed ``price_change``.
        total_quotes: Number of quotes compared.
        lowest_premium / highest_premium / average_premium: ``None`` when no
            quotes were given.
        best_value_id: Id of the cheapest quote (first one on ties).
        selected_quote_id: Id of the quote flagged as selected, if any.
    """

    expiring_premium: Decimal
    quotes: list[ComparedQuote] = Field(default_factory=list)
    total_quotes: int = 0
    lowest_premium: Optional[Decimal] = None
    highest_premium: Optional[Decimal] = None
    average_premium: Optional[Decimal] = None
    best_value_id: Optional[UUID] = None
    selected_quote_id: Optional[UUID] = None


def price_change(quote_premium: Decimal, expiring_premium: Decimal) -> Optional[float]:
    """Percentage change from *expiring_premium*; ``None`` if it is not positive."""
    expiring = Decimal(expiring_premium)
    if expiring <= 0:
        return None
    return float((Decimal(quote_premium) - expiring) / expiring * 100)


def compare_quotes(expiring_premium: Decimal, quotes: Sequence[Quote]) -> QuoteComparison:
    """Compute per-quote price changes and aggregate premium statistics."""
    expiring = Decimal(expiring_premium)
    comparison = QuoteComparison(
        expiring_premium=expiring,
        quotes=[
            ComparedQuote(quote=q, price_change=price_change(q.premium, expiring))
            for q in quotes
        ],
        total_quotes=len(quotes),
    )
    if not quotes:
        return comparison

    premiums = [q.premium for q in quotes]
    # min() keeps the first of equal elements, which is the tie-break we want.
    best = min(quotes, key=lambda q: q.premium)

    comparison.lowest_premium = min(premiums)
    comparison.highest_premium = max(premiums)
    comparison.average_premium = statistics.mean(premiums)
    comparison.best_value_id = best.id
    comparison.selected_quote_id = next((q.id for q in quotes if q.is_selected), None)

    logger.debug(
        "Compared %d quotes: lowest=%s highest=%s best=%s",
        len(quotes),
        comparison.lowest_premium,
        comparison.highest_premium,
        best.carrier,
    )
    return comparison
