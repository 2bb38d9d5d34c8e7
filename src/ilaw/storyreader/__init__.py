"""Reading sessions and progress tracking for the Ilaw ng Bayan story reader."""

__version__ = "0.1.0"
