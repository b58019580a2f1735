"""Question answering over named document collections."""

__version__ = "0.1.0"
