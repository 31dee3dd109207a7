"""Exception types raised inside the engine and mapped to error responses."""


class ClaimDeskError(Exception):
    """Base class for errors that become structured error responses."""

    pass


class PayloadValidationError(ClaimDeskError):
    """Raised when a client payload or inbound event is malformed."""

    pass


class BlobStoreNotConfiguredError(ClaimDeskError):
    """Raised when an upload batch arrives but no blob store is configured."""

    pass
