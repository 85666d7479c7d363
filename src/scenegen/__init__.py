"""Script-to-scene image generator with a bounded local session history."""

__version__ = "0.1.0"
