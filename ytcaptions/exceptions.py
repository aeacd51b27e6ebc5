"""
Exception hierarchy for the caption service.

Only structural failures are raised. A video without captions, or a track
whose download comes back empty, is a normal outcome and is reported as
data in the response payload instead.

Hierarchy
---------
CaptionServiceError
├── InvalidInputError
├── NoApiConfigError
├── UpstreamStatusError
├── AllRegionsFailedError
├── DeadlineExceededError
└── JsonExtractionError
    ├── MarkerNotFoundError
    ├── NoOpeningBraceError
    └── UnbalancedJsonError
"""


class CaptionServiceError(Exception):
    """Base exception for all caption service errors."""


class InvalidInputError(CaptionServiceError):
    """Raised when the input cannot be resolved to a YouTube video id."""


class NoApiConfigError(CaptionServiceError):
    """Raised when the watch page lacks the embedded INNERTUBE config."""


class UpstreamStatusError(CaptionServiceError):
    """Raised when a YouTube endpoint answers with a non-2xx status."""


class AllRegionsFailedError(CaptionServiceError):
    """Raised when every region attempt failed before returning player data."""


class DeadlineExceededError(CaptionServiceError):
    """Raised when a caption request runs past its overall deadline."""


# --- Embedded JSON extraction -----------------------------------------------

class JsonExtractionError(CaptionServiceError):
    """Raised when an embedded JSON object cannot be extracted from text."""


class MarkerNotFoundError(JsonExtractionError):
    """Raised when the marker string does not occur in the text."""


class NoOpeningBraceError(JsonExtractionError):
    """Raised when no '{' follows the marker."""


class UnbalancedJsonError(JsonExtractionError):
    """Raised when braces never balance, or the balanced slice is not valid JSON."""
