"""StreamSports - resolve protected player pages and relay their HLS streams."""

__version__ = "0.3.0"
