"""
Error taxonomy for the aggregation engine.

Read paths that tolerate absence treat ConfigurationMissing and
CredentialsMissing as "nothing to show"; upstream errors degrade the
single feed or vendor they belong to.
"""

from __future__ import annotations

from typing import Optional


class StatusBoardError(Exception):
    """Base class for all engine errors."""


class ConfigurationMissing(StatusBoardError):
    """The integration is disabled or has no base URL."""


class CredentialsMissing(StatusBoardError):
    """One of the configured credential variables is unset."""


class InvalidConfiguration(StatusBoardError):
    """A configuration record was rejected on save."""


class UpstreamError(StatusBoardError):
    """An external system could not deliver a usable response."""


class UpstreamUnreachable(UpstreamError):
    """Transport-level failure: DNS, connection refused, timeout."""


class UpstreamRejected(UpstreamError):
    """The external system answered with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class UpstreamMalformed(UpstreamRejected):
    """The response body did not have the expected shape."""
