"""Exception taxonomy for webhook ingestion and forwarding."""


class WebhookError(Exception):
    """Base class for failures surfaced to the webhook caller."""

    status_code = 400


class ParseError(WebhookError):
    """Body could not be turned into a signal (malformed free text or JSON shape)."""


class SignalValidationError(WebhookError):
    """Signal parsed but lacks a required field (action, ticker, price)."""


class AuthError(WebhookError):
    """Shared secret mismatch."""

    status_code = 401


class DestinationError(Exception):
    """An outbound delivery failed.

    ``transient`` is True for timeouts and connection failures, False for
    responses the destination rejected.
    """

    def __init__(self, destination: str, target: str, message: str, transient: bool = False):
        super().__init__(message)
        self.destination = destination
        self.target = target
        self.transient = transient

    @property
    def kind(self) -> str:
        return "transient" if self.transient else "permanent"


class TradeNotFoundError(LookupError):
    """No trade with the requested id."""


class TradeStateError(ValueError):
    """Operation not valid for the trade's current status."""
