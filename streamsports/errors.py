"""Exceptions raised by the resolution core and the relay."""


class StreamSportsError(Exception):
    """Base class for all streamsports errors."""


class DecodeFailure(StreamSportsError):
    """The player page could not be statically decoded.

    Never fatal: the caller moves on to the next resolver.
    """

    def __init__(self, reason: str = ""):
        super().__init__(reason or self.__class__.__name__)
        self.reason = reason or self.__class__.__name__


class NoMarker(DecodeFailure):
    """The packer call-site marker is missing from the HTML."""


class NoParams(DecodeFailure):
    """The packer parameter tuple did not match the expected grammar."""


class NotFound(DecodeFailure):
    """The decoded script holds no manifest URL."""


class ResolutionFailed(StreamSportsError):
    """Every resolution strategy failed for a player page."""

    def __init__(self, message: str, reasons: list[str] | None = None):
        super().__init__(message)
        self.reasons = reasons or []


class ResolutionTimeout(ResolutionFailed):
    """The browser resolver saw no manifest request in time."""


class NetworkError(StreamSportsError):
    """An upstream request failed below the HTTP layer."""


class UpstreamHTTPError(StreamSportsError):
    """The origin answered with a non-2xx status."""

    def __init__(self, status: int):
        super().__init__(f"upstream returned HTTP {status}")
        self.status = status


class InvalidRequest(StreamSportsError):
    """A relay request is missing parameters or carries a malformed URL."""


class RelayUnavailable(StreamSportsError):
    """The relay could not bind any port in its range."""
