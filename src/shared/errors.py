"""Error taxonomy shared by the checkout and order pipeline.

Errors that would prevent an Order from ever existing are raised to the
caller. Conditions that only degrade attribution or display detail are
logged and recovered locally.
"""


class ValidationError(Exception):
    """Raised when input fails validation before any side effect is performed.

    ``messages`` maps a field name to a list of human-readable problems.
    """

    def __init__(self, messages: dict[str, list[str]]) -> None:
        self.messages = messages
        super().__init__(messages)

    def __str__(self) -> str:
        return "; ".join(f"{field}: {', '.join(problems)}" for field, problems in self.messages.items())


class PaymentProviderError(Exception):
    """The external payment provider rejected or failed a request."""


class SignatureVerificationError(Exception):
    """A payment callback could not be authenticated."""


class ConfigurationError(Exception):
    """Settings are unusable for the current environment."""


class PartialItemizationWarning(UserWarning):
    """An order line could not be recorded; the order itself still exists."""
