"""Error taxonomy for the disbursement engine.

FatalError
    Startup-time or structural problems. The process logs and exits non-zero.
RecoverableError
    Round- or recipient-scoped failures. Converted to outcomes or a short-delay
    round retry, never to process exit.
"""


class AutosendError(Exception):
    pass


class FatalError(AutosendError):
    pass


class EmptySourceError(FatalError):
    pass


class SelfOnlyBookError(FatalError):
    pass


class CredentialError(FatalError):
    pass


class ConfigError(FatalError):
    pass


class RecoverableError(AutosendError):
    pass


class RetryError(RecoverableError):
    """An operation gave up. Carries enough context to diagnose without a debugger."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")


class RetryExhaustedError(RetryError):
    pass


class OperationFailedError(RetryError):
    pass


class BalanceQueryError(RecoverableError):
    pass


# Raised by the ledger adapters; the retry layer decides what they mean.
class SubmissionError(AutosendError):
    pass


class FinalityError(AutosendError):
    pass


__all__ = [
    "AutosendError",
    "BalanceQueryError",
    "ConfigError",
    "CredentialError",
    "EmptySourceError",
    "FatalError",
    "FinalityError",
    "OperationFailedError",
    "RecoverableError",
    "RetryError",
    "RetryExhaustedError",
    "SelfOnlyBookError",
    "SubmissionError",
]
