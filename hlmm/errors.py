"""
Exception types raised by the HLMM core and its feed.

Risk rejections and missing data are not exceptions: they travel as
``Rejected`` decisions and as the snapshot's ``insufficient_data`` state.
"""


class HlmmError(Exception):
    """Base class for all HLMM errors."""


class MalformedInput(HlmmError, ValueError):
    """A market data event or fill carried a non-finite or out-of-range field.

    Raised at the ingestion boundary before any state is touched. The caller
    reports it and moves on to the next event.
    """


class InternalInvariantViolation(HlmmError, RuntimeError):
    """A component produced output that breaks its own contract (e.g. a crossed quote).

    Indicates a defect. Aborts the current decision cycle and must never be
    swallowed.
    """


class FeedDisconnected(HlmmError, ConnectionError):
    """The market data transport lost its connection."""

    def __init__(self, reason: str, code=None):
        super().__init__(reason)
        self.reason = reason
        self.code = code
