"""Error taxonomy for pricewatch.

Every component raises one of these so callers can decide per error kind
whether to retry, skip, report to the requester, or abort.
"""


class PriceWatchError(Exception):
    """Base class for all pricewatch errors."""


class StorageUnavailable(PriceWatchError):
    """The alert store could not be reached or the query failed.

    Transient: loops skip the iteration and retry with backoff.
    """


class NotFound(PriceWatchError):
    """A referenced alert id does not exist (already removed or mutated)."""

    def __init__(self, kind: str, alert_id: int):
        super().__init__(f"{kind} {alert_id} not found")
        self.kind = kind
        self.alert_id = alert_id


class UnknownAsset(PriceWatchError, ValueError):
    """A user-entered symbol could not be resolved to a token."""

    def __init__(self, symbol: str):
        super().__init__(f"Unknown asset: {symbol}")
        self.symbol = symbol


class InvalidSchedule(PriceWatchError, ValueError):
    """A cron expression is malformed or cannot produce a next fire time."""

    def __init__(self, expression: str, reason: str = ""):
        message = f"Invalid schedule: {expression!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.expression = expression


class DeliveryError(PriceWatchError):
    """A notification could not be delivered. Never fatal."""


class SchedulingFault(PriceWatchError):
    """A persisted cron alert can no longer be rescheduled and was deactivated."""

    def __init__(self, alert_id: int, expression: str):
        super().__init__(
            f"Cron alert {alert_id} deactivated: schedule {expression!r} can no longer be evaluated"
        )
        self.alert_id = alert_id
        self.expression = expression


class PriceUnavailable(PriceWatchError):
    """The feed has no current price for a token."""

    def __init__(self, token: str):
        super().__init__(f"No current price for {token}")
        self.token = token


class FeedUnavailable(PriceWatchError):
    """The market-data feed could not be connected or subscribed."""
