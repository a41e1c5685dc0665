"""Domain exceptions for transfer operations."""


class TransferError(Exception):
    """Base class for transfer errors."""


class TransferNotFoundError(TransferError):
    """Raised when a transfer or one of its accounts cannot be found."""


class TransferValidationError(TransferError):
    """Raised when request validation fails."""


class UnsupportedProviderError(TransferValidationError):
    """Raised when no capability implementation exists for a provider type."""


class ProviderError(TransferError):
    """Raised when a provider capability call fails.

    The message of the underlying failure is preserved verbatim so it can be
    recorded on the job.
    """


class PersistenceError(TransferError):
    """Raised by repositories when the durable store rejects an operation."""


class InvalidTransitionError(TransferError):
    """Raised when a job is asked to move along an illegal status edge."""


class TransferCancelledError(TransferError):
    """Raised inside a pipeline once its cancellation token has been set."""


__all__ = [
    "InvalidTransitionError",
    "PersistenceError",
    "ProviderError",
    "TransferCancelledError",
    "TransferError",
    "TransferNotFoundError",
    "TransferValidationError",
    "UnsupportedProviderError",
]
