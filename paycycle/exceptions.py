from __future__ import annotations


class InvalidBillError(ValueError):
    """Raised when a bill record cannot be projected."""


class ComputationLimitExceeded(RuntimeError):
    """Raised when a date iteration trips its guard."""


class EmailDeliveryError(RuntimeError):
    """Raised when the e-mail provider cannot deliver a reminder."""

    def __init__(self, message: str, retriable: bool = True) -> None:
        super().__init__(message)
        self.retriable = retriable
