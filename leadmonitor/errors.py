"""
Error taxonomy shared by the clients, the lead store and the routes.
"""


class LeadMonitorError(Exception):
    """Base class for all domain errors."""


class InvalidArgument(LeadMonitorError, ValueError):
    """A caller-supplied value is outside its contract. Not retried."""


class UpstreamUnavailable(LeadMonitorError):
    """The search provider (or the network) failed."""

    def __init__(self, service, message):
        self.service = service
        super().__init__(f"{service} unavailable: {message}")


class ScoringDegraded(LeadMonitorError):
    """A scoring call failed or returned unparsable content.

    Only raised inside the scoring client; it is always converted into a
    neutral ScoreResult before reaching callers.
    """


class NotFound(LeadMonitorError):
    """Referenced id is absent."""


class StorageFailure(LeadMonitorError):
    """A persistence operation failed (batch writes are rolled back)."""
