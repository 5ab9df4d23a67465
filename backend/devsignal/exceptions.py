"""Exceptions raised by the DevSignal pipeline."""


class DevSignalError(Exception):
    """Base class for pipeline errors."""
    pass


class SignalSourceNotFound(DevSignalError):
    """The source does not exist or belongs to another organization."""
    pass


class InvalidScoringConfig(DevSignalError):
    """A proposed scoring configuration failed validation."""
    pass


class AccountLockTimeout(DevSignalError):
    """Per-account recomputation lock could not be acquired in time."""
    pass


class StaleAccountScore(DevSignalError):
    """A concurrent writer already stored a newer AccountScore version."""
    pass


class NotificationDeliveryError(DevSignalError):
    """A notification channel rejected or failed to deliver a message."""
    pass


class AccountNotFound(DevSignalError):
    """The account does not exist in the organization."""
    pass
