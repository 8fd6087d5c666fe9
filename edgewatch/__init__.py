"""edgewatch - streaming new-market edge detector."""

__version__ = "0.1.0"
