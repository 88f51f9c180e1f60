"""Error taxonomy for the marketplace client.

Business-rule failures reuse Protean's ``ValidationError`` (a ``messages``
dict keyed by field or discount category) so callers can scope the message to
the offending field. Infrastructure failures derive from ``MarketplaceError``.
"""

from protean.exceptions import ValidationError

__all__ = [
    "ChannelError",
    "DiscountUnavailableError",
    "GatewayError",
    "MarketplaceError",
    "SessionExpiredError",
    "StaleOfferError",
    "SubmissionError",
    "TransitionError",
    "ValidationError",
]


class StaleOfferError(ValidationError):
    """A chosen discount expired, was deactivated or ran out of uses before confirmation."""

    def __init__(self, category: str, code: str, reason: str):
        self.category = category
        self.code = code
        self.reason = reason
        super().__init__({category: [f"Discount {code} is no longer available: {reason}"]})


class TransitionError(ValidationError):
    """A status change not permitted from the current state, or not by this actor."""

    def __init__(self, current, target, actor=None):
        self.current = current
        self.target = target
        self.actor = actor
        message = f"Cannot transition from {_value(current)} to {_value(target)}"
        if actor is not None:
            message += f" as {_value(actor)}"
        super().__init__({"status": [message]})


def _value(member):
    return getattr(member, "value", member)


class MarketplaceError(Exception):
    """Base class for infrastructure failures (network, session, push channel)."""


class GatewayError(MarketplaceError):
    """The marketplace API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DiscountUnavailableError(MarketplaceError):
    """Eligible discounts could not be retrieved; checkout may continue without them."""


class SubmissionError(MarketplaceError):
    """One vendor's order creation failed. Other vendors' orders are unaffected."""

    def __init__(self, vendor_id: str, reason: str):
        self.vendor_id = vendor_id
        self.reason = reason
        super().__init__(f"Order for vendor {vendor_id} failed: {reason}")


class SessionExpiredError(MarketplaceError):
    """Credentials were rejected; a refresh is needed, or re-authentication if refresh failed."""


class ChannelError(MarketplaceError):
    """The push channel dropped or could not be opened."""
