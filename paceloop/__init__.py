"""PaceLoop - real-time GPS workout tracking core."""

__version__ = "0.1.0"
