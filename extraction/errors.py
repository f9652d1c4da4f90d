"""
Extraction failures.

Every ExtractError is retryable: the job goes back to the queue (or to the
fallback extractor) rather than failing outright. Only running out of
attempts makes a job dead.
"""


class ExtractError(Exception):
    kind = "extract_error"
    retryable = True


class ExtractTimeout(ExtractError):
    """The upstream call did not finish inside its deadline."""
    kind = "timeout"


class UpstreamError(ExtractError):
    """Transport failure, non-2xx status, or an unparseable body."""
    kind = "upstream"


class InvalidShape(ExtractError):
    """The response parsed, but a requested field is missing or has the wrong type."""
    kind = "invalid_shape"
