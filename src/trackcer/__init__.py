"""TrackCer - listening history aggregation and producer analytics."""

__version__ = "0.1.0"
