"""Exceptions raised across the pricing and alerting engine."""


class ProviderUnavailable(RuntimeError):
    """The flight-offer search provider failed or timed out."""


class PersistenceError(RuntimeError):
    """A read or write against the persistent store failed."""


class AlertNotFound(LookupError):
    """No alert with the given id exists for the given owner."""


class WheelSpinError(RuntimeError):
    """A wheel spin could not produce any priced destination."""


__all__ = [
    "ProviderUnavailable",
    "PersistenceError",
    "AlertNotFound",
    "WheelSpinError",
]
