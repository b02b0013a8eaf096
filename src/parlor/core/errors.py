"""Client domain exceptions."""

from __future__ import annotations


class ParlorError(Exception):
    """Base for client domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class ConfigError(ParlorError):
    """Config validation or load failure; fatal for the connection attempt."""


class TransportError(ParlorError):
    """Network or authentication failure while connecting."""


class NotConnectedError(ParlorError):
    """Outbound action attempted while the session is disconnected."""


class EventReductionFault(ParlorError):
    """A single inbound event could not be reduced; state was rolled back."""


class SequencerStepError(ParlorError):
    """One post-registration automation step failed and was skipped."""
