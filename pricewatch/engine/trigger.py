"""Band matching of price alerts against a mark price."""

from typing import Optional

from pricewatch.db.store import AlertStore
from pricewatch.models import PriceAlert

DEFAULT_BAND = 0.05


class TriggerEvaluator:
    """Finds price alerts whose target lies within a band around the mark price.

    Matching is "price is near the target" rather than threshold crossing, so
    an alert keeps matching while the price hovers in band. Cooldown
    suppression is what turns that into one notification per window.
    """

    def __init__(self, store: AlertStore, band: float = DEFAULT_BAND):
        if not 0 < band < 1:
            raise ValueError(f"band must be in (0, 1), got {band}")
        self._store = store
        self.band = band

    def bounds(self, mark_price: float) -> tuple[float, float]:
        """Inclusive ``(lower, upper)`` target prices that match ``mark_price``."""
        return mark_price * (1 - self.band), mark_price * (1 + self.band)

    def evaluate(self, mark_price: float, token: Optional[str] = None) -> list[PriceAlert]:
        """Unsuppressed alerts matching ``mark_price``.

        Args:
            mark_price: Current mark price.
            token: Restrict matches to alerts on this token.
        """
        lower, upper = self.bounds(mark_price)
        return self._store.find_matching(lower, upper, token=token)
