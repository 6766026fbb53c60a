"""Exception types raised by Guardian adapters."""


class GuardianError(Exception):
    """Base class for Guardian errors."""


class ThreatFeedError(GuardianError):
    """A threat feed could not be fetched or parsed."""


class PersistenceError(GuardianError):
    """The persistence adapter failed to read or write state."""


class RegistrationLookupError(GuardianError):
    """An RDAP registration record could not be fetched or parsed."""
