"""Exception types raised by the triage pipeline and configuration store."""


class MailguardError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(MailguardError):
    """Invalid policy, weights, or rule configuration."""


class SignalError(MailguardError):
    """A raw message that cannot be normalized into signals."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class RuleNotFoundError(MailguardError, LookupError):
    pass


class AlertNotFoundError(MailguardError, LookupError):
    pass
