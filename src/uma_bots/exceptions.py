"""Error types raised by the UMA bot components."""


class ConfigurationError(ValueError):
    """Missing or invalid configuration. Fatal, never retried."""


class ProviderDivergenceError(RuntimeError):
    """Two RPC providers disagree about the events in the same block range."""

    def __init__(self, message: str, event_name: str, transaction_hash: str, provider_index: int) -> None:
        super().__init__(message)
        self.event_name = event_name
        self.transaction_hash = transaction_hash
        self.provider_index = provider_index


class PriceFeedError(RuntimeError):
    """A price feed could not produce a price."""


class SigningError(RuntimeError):
    """The signing service returned a signature that cannot be used."""


class TransactionError(RuntimeError):
    """A transaction failed before or during submission.

    ``type`` is ``"call"`` when the pre-flight simulation failed and
    ``"send"`` when the broadcast itself was rejected. ``"receipt"`` means
    the transaction was broadcast but no receipt arrived in time, so it may
    still be mined.
    """

    def __init__(self, message: str, type: str) -> None:
        super().__init__(message)
        self.type = type
