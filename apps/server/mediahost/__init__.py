"""mediahost: bootstrap and lifecycle control for the media server process."""

__version__ = "0.1.0"
