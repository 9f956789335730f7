"""Quote comparison for renewals."""

from renewdesk.quotes.comparator import (
    ComparedQuote,
    QuoteComparison,
    compare_quotes,
    price_change,
)

__all__ = ["ComparedQuote", "QuoteComparison", "compare_quotes", "price_change"]
