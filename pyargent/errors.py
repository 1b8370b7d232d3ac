"""Exceptions raised by pyargent."""

from typing import Optional


class ArgentError(Exception):
    """Base class for all pyargent errors."""


class SignerMismatch(ArgentError, ValueError):
    """An explicit ``from`` address disagrees with the wallet owning the signer."""

    def __init__(self, expected: str, got: str):
        self.expected = expected
        self.got = got
        super().__init__(
            f"This signer can only sign transactions from {expected}, got {got} instead."
        )


class InsufficientSignatories(ArgentError):
    """The aggregated signature does not carry the number of signatures the account expects.

    Never raised while aggregating; callers may use it to classify a destination rejection.
    """


class InvalidEscapeState(ArgentError):
    """An escape action was attempted outside its required status or type."""


class EscapeOverrideForbidden(ArgentError):
    """A pending escape cannot be overridden by this party."""


class MaxEscapeAttemptsExceeded(ArgentError):
    """The guardian triggered too many owner escapes in a row."""


class AddressPredictionMismatch(ArgentError):
    """Client-side and on-chain deterministic addresses disagree."""

    def __init__(self, predicted: str, actual: str, source: str):
        self.predicted = predicted
        self.actual = actual
        self.source = source
        super().__init__(
            f"predicted account address {predicted} but {source} reported {actual}"
        )


class TimestampWaitTimeout(ArgentError, TimeoutError):
    """Waiting for a block timestamp exceeded its bound."""


class DestinationRejected(ArgentError):
    """The destination contract or node refused a transaction."""

    def __init__(self, reason: str, tx_hash: Optional[bytes] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(reason)


class ConfigError(ArgentError):
    """Persisted network configuration is missing or incomplete."""
