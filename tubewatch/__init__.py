"""tubewatch - live YouTube keyword watching over WebSockets."""

__version__ = "0.1.0"
